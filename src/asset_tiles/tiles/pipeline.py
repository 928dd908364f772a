"""Staged render pipeline producing tiles for models and prefabs.

The pipeline owns one offscreen scene, camera and render target. It renders
at most one asset at a time and is advanced incrementally, once per editor
tick, so waiting for the GPU read-back never blocks the caller.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from .cache import TileCache
from .camera import frame_bounds
from .collaborators import OffscreenRenderer, ResourceLoader, SceneModel
from .encoder import TileEncoder
from .errors import EncodeFailure, LoadFailure, TileError
from .requests import AssetKind, TileRequest

__all__ = [
    "AdmissionSlot",
    "InFlightTile",
    "RenderAdmission",
    "Stage",
    "StagedRenderPipeline",
]

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[TileRequest, Path | None], None]


class Stage(str, Enum):
    """Stages an in-flight tile moves through."""

    EMPTY = "empty"
    LOADING = "loading"
    RESOLVING = "resolving"
    RENDERING = "rendering"
    BLITTING = "blitting"
    READING_BACK = "reading_back"
    DRAINING = "draining"
    FINALIZE = "finalize"


@dataclass(slots=True)
class AdmissionSlot:
    """A request admitted into the ring together with its loading resource."""

    request: TileRequest
    resource: Any


@dataclass(slots=True)
class InFlightTile:
    """State of the single tile currently being rendered."""

    request: TileRequest
    resource: Any
    stage: Stage = Stage.RENDERING
    entity: Any = None
    model: Any = None
    texture: Any = None
    frame_countdown: int = -1
    pixel_buffer: bytearray | memoryview | None = None

    @property
    def content_hash(self) -> int:
        return self.request.content_hash


class RenderAdmission:
    """Bounded FIFO ring of admitted requests plus an unbounded overflow list.

    Admitting a request starts loading its resource. Requests that arrive
    while the ring is full, or while older requests still wait in the
    overflow list, are parked and admitted in arrival order as slots free up.
    """

    def __init__(self, capacity: int, load: Callable[[TileRequest], Any]) -> None:
        if capacity <= 0:
            raise ValueError("Admission capacity must be positive")
        self._capacity = capacity
        self._load = load
        self._ring: deque[AdmissionSlot] = deque()
        self._overflow: deque[TileRequest] = deque()

    def __len__(self) -> int:
        return len(self._ring)

    def __bool__(self) -> bool:
        return bool(self._ring)

    def __iter__(self) -> Iterator[TileRequest]:
        yield from (slot.request for slot in self._ring)
        yield from self._overflow

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def overflow_count(self) -> int:
        return len(self._overflow)

    @property
    def is_full(self) -> bool:
        return len(self._ring) >= self._capacity

    def admit(self, request: TileRequest) -> bool:
        """Admit *request*; returns ``False`` when it went to the overflow list."""

        if self.is_full or self._overflow:
            self._overflow.append(request)
            logger.debug("Render admission full, parked %s", request.source_path)
            return False
        self._ring.append(AdmissionSlot(request, self._load(request)))
        return True

    def pop(self) -> AdmissionSlot:
        """Remove the oldest admitted slot and refill from the overflow list."""

        slot = self._ring.popleft()
        if self._overflow:
            parked = self._overflow.popleft()
            self._ring.append(AdmissionSlot(parked, self._load(parked)))
        return slot


class StagedRenderPipeline:
    """Render model and prefab tiles across several editor ticks."""

    def __init__(
        self,
        *,
        loader: ResourceLoader,
        scene: SceneModel,
        renderer: OffscreenRenderer,
        encoder: TileEncoder,
        cache: TileCache,
        tile_size: int,
        capacity: int = 8,
        readback_frames: int = 2,
        on_complete: CompletionCallback | None = None,
    ) -> None:
        if readback_frames < 0:
            raise ValueError("Read-back frame delay cannot be negative")
        self._loader = loader
        self._scene = scene
        self._renderer = renderer
        self._encoder = encoder
        self._cache = cache
        self._tile_size = tile_size
        self._readback_frames = readback_frames
        self._on_complete = on_complete
        self._admission = RenderAdmission(capacity, self._load)
        self._current: AdmissionSlot | None = None
        self._in_flight: InFlightTile | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def admission(self) -> RenderAdmission:
        return self._admission

    @property
    def current(self) -> TileRequest | None:
        """Request popped from the ring whose resource is still loading."""

        return self._current.request if self._current is not None else None

    @property
    def in_flight(self) -> InFlightTile | None:
        return self._in_flight

    @property
    def stage(self) -> Stage:
        if self._in_flight is not None:
            return self._in_flight.stage
        if self._current is not None:
            return Stage.LOADING
        return Stage.EMPTY

    @property
    def readback_frames(self) -> int:
        return self._readback_frames

    def pending(self) -> list[TileRequest]:
        """Return every request not yet finished, oldest first."""

        requests: list[TileRequest] = []
        if self._in_flight is not None:
            requests.append(self._in_flight.request)
        if self._current is not None:
            requests.append(self._current.request)
        requests.extend(self._admission)
        return requests

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def submit(self, request: TileRequest) -> bool:
        """Queue *request*; returns ``False`` when it was parked in overflow."""

        if not request.asset_kind.is_rendered:
            raise ValueError(f"{request.asset_kind.value} assets are not rendered")
        return self._admission.admit(request)

    def advance(self) -> Stage:
        """Advance the state machine by one tick and return the new stage."""

        tile = self._in_flight
        if tile is not None:
            if tile.stage is Stage.DRAINING:
                self._guarded(tile, self._drain)
            elif tile.stage is Stage.RESOLVING:
                self._guarded(tile, self._resolve)
            return self.stage

        if self._current is None:
            if not self._admission:
                return Stage.EMPTY
            self._current = self._admission.pop()

        slot = self._current
        if slot.resource is None or self._loader.is_failure(slot.resource):
            logger.error("Failed to load %s", slot.request.source_path)
            self._current = None
            self._unload(slot.resource)
            self._notify(slot.request, None)
            return self.stage
        if not self._loader.is_ready(slot.resource):
            return Stage.LOADING

        self._current = None
        tile = InFlightTile(slot.request, slot.resource)
        self._in_flight = tile
        self._guarded(tile, self._render)
        return self.stage

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    def _render(self, tile: InFlightTile) -> None:
        tile.stage = Stage.RENDERING
        tile.entity = self._scene.instantiate(tile.resource)
        if tile.entity is None:
            raise LoadFailure(f"Unable to instantiate {tile.request.source_path}")

        if tile.request.asset_kind is AssetKind.PREFAB:
            tile.model = self._scene.primary_model(tile.entity)
            if tile.model is None:
                raise LoadFailure(f"Prefab {tile.request.source_path} has no renderable model")
            self._resolve(tile)
        else:
            self._capture(tile, tile.resource)

    def _resolve(self, tile: InFlightTile) -> None:
        if self._loader.is_failure(tile.model):
            raise LoadFailure(f"Model of prefab {tile.request.source_path} failed to load")
        if not self._loader.is_ready(tile.model):
            tile.stage = Stage.RESOLVING
            return
        self._capture(tile, tile.model)

    def _capture(self, tile: InFlightTile, model: Any) -> None:
        tile.stage = Stage.RENDERING
        bounds = self._scene.bounding_volume(model)
        if bounds is None:
            raise LoadFailure(f"No bounding volume for {tile.request.source_path}")
        self._scene.set_camera_transform(frame_bounds(bounds))
        self._renderer.resize(self._tile_size, self._tile_size)
        self._renderer.render()

        tile.stage = Stage.BLITTING
        tile.texture = self._renderer.blit_to_readable_texture()

        tile.stage = Stage.READING_BACK
        tile.pixel_buffer = self._renderer.readback(tile.texture)
        self._scene.destroy(tile.entity)
        tile.entity = None

        tile.frame_countdown = self._readback_frames
        tile.stage = Stage.DRAINING
        logger.debug(
            "Waiting %d frame(s) for read-back of %s",
            tile.frame_countdown,
            tile.request.source_path,
        )
        if tile.frame_countdown == 0:
            self._finalize(tile)

    def _drain(self, tile: InFlightTile) -> None:
        tile.frame_countdown -= 1
        if tile.frame_countdown <= 0:
            self._finalize(tile)

    def _finalize(self, tile: InFlightTile) -> None:
        tile.stage = Stage.FINALIZE
        request = tile.request
        pixels = bytes(tile.pixel_buffer or b"")
        try:
            payload = self._encoder.encode(pixels, self._tile_size, self._tile_size)
        except EncodeFailure as exc:
            logger.error("Failed to encode tile for %s: %s", request.source_path, exc)
            path = self._cache.copy_placeholder(request)
        else:
            path = self._cache.write(request, payload)

        self._release(tile)
        self._notify(request, path)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _guarded(self, tile: InFlightTile, step: Callable[[InFlightTile], None]) -> None:
        try:
            step(tile)
        except TileError as exc:
            logger.error("Dropping tile for %s: %s", tile.request.source_path, exc)
            self._abort(tile)
        except Exception:  # noqa: BLE001 - renderer failures must not stop the pipeline
            logger.exception("Unexpected failure while rendering tile for %s", tile.request.source_path)
            self._abort(tile)

    def _abort(self, tile: InFlightTile) -> None:
        if tile.entity is not None:
            try:
                self._scene.destroy(tile.entity)
            except Exception:  # noqa: BLE001 - keep releasing the remaining resources
                logger.exception("Failed to destroy tile entity for %s", tile.request.source_path)
            tile.entity = None
        self._release(tile)
        self._notify(tile.request, None)

    def _release(self, tile: InFlightTile) -> None:
        if tile.texture is not None:
            try:
                self._renderer.destroy_texture(tile.texture)
            except Exception:  # noqa: BLE001 - keep releasing the remaining resources
                logger.exception("Failed to destroy read-back texture for %s", tile.request.source_path)
            tile.texture = None
        self._unload(tile.resource)
        tile.resource = None
        tile.pixel_buffer = None
        if self._in_flight is tile:
            self._in_flight = None

    def _load(self, request: TileRequest) -> Any:
        try:
            return self._loader.load(request.source_path)
        except Exception:  # noqa: BLE001 - reported as a load failure when popped
            logger.exception("Failed to start loading %s", request.source_path)
            return None

    def _unload(self, resource: Any) -> None:
        if resource is None:
            return
        try:
            self._loader.unload(resource)
        except Exception:  # noqa: BLE001 - unloading is best effort
            logger.exception("Failed to unload resource %r", resource)

    def _notify(self, request: TileRequest, path: Path | None) -> None:
        if self._on_complete is None:
            return
        try:
            self._on_complete(request, path)
        except Exception:  # noqa: BLE001 - listener errors stay in the log
            logger.exception("Tile completion callback failed for %s", request.source_path)
