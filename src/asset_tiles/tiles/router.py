"""Single entry point that routes tile requests to the right producer."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from os import PathLike
from pathlib import Path

from ..config import TileConfig, get_config
from .cache import PlaceholderSet, TileCache
from .collaborators import OffscreenRenderer, ResourceLoader, SceneModel
from .encoder import TileEncoder
from .errors import TileError
from .pipeline import Stage, StagedRenderPipeline
from .requests import AssetKind, TileRequest, classify_path, coerce_kind, content_hash
from .resampler import ImageResampler
from .worker import ResizeQueue, ResizeWorker

__all__ = ["TileListener", "TileRouter"]

logger = logging.getLogger(__name__)

TileListener = Callable[[TileRequest, Path | None], None]
"""Callback receiving a finished request and its tile path (``None`` if dropped)."""


class TileRouter:
    """Classify tile requests and forward them to the worker or the pipeline.

    ``submit`` and ``advance`` are called from the editor tick. Image tiles are
    produced on a background thread; model and prefab tiles are rendered by
    the staged pipeline each time ``advance`` runs.
    """

    def __init__(
        self,
        *,
        loader: ResourceLoader,
        scene: SceneModel,
        renderer: OffscreenRenderer,
        config: TileConfig | None = None,
        closers: Iterable[Callable[[], object]] = (),
    ) -> None:
        self._config = config or get_config()
        self._closers = list(closers)
        self._encoder = TileEncoder(self._config.pixel_format)
        placeholders = PlaceholderSet(
            self._config.placeholder_dir,
            tile_size=self._config.tile_size,
            encoder=self._encoder,
            extension=self._config.extension,
        )
        self._cache = TileCache(
            self._config.cache_root,
            placeholders=placeholders,
            extension=self._config.extension,
        )
        self._pending: set[int] = set()
        self._pending_lock = threading.Lock()
        self._listeners: list[TileListener] = []

        self._queue = ResizeQueue()
        self._worker = ResizeWorker(
            self._queue,
            cache=self._cache,
            resampler=ImageResampler(self._config.tile_size),
            encoder=self._encoder,
            on_complete=self._finished,
        )
        self._pipeline = StagedRenderPipeline(
            loader=loader,
            scene=scene,
            renderer=renderer,
            encoder=self._encoder,
            cache=self._cache,
            tile_size=self._config.tile_size,
            capacity=self._config.render_capacity,
            readback_frames=self._config.readback_frames,
            on_complete=self._finished,
        )

    def __enter__(self) -> "TileRouter":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def config(self) -> TileConfig:
        return self._config

    @property
    def cache(self) -> TileCache:
        return self._cache

    @property
    def pipeline(self) -> StagedRenderPipeline:
        return self._pipeline

    @property
    def worker(self) -> ResizeWorker:
        return self._worker

    @property
    def resize_queue(self) -> ResizeQueue:
        return self._queue

    def is_pending(self, path: str | PathLike[str]) -> bool:
        with self._pending_lock:
            return content_hash(path) in self._pending

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Start the background resize worker."""

        self._worker.start()

    def shutdown(self, timeout: float | None = None) -> None:
        """Stop the resize worker and release owned collaborators.

        Queued image requests are reported to listeners as dropped. Callables
        passed as ``closers`` run once, after the worker has stopped.
        """

        self._worker.stop(timeout)
        closers, self._closers = self._closers, []
        for close in closers:
            try:
                close()
            except Exception:  # noqa: BLE001 - keep releasing the remaining collaborators
                logger.exception("Failed to release tile collaborator %r", close)

    def add_listener(self, listener: TileListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: TileListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            return

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------
    def submit(self, path: str | PathLike[str], kind: AssetKind | str | None = None) -> bool:
        """Request the tile for *path*.

        Returns ``False`` only when the asset kind is not recognised. Duplicate
        requests, and requests for tiles already written this session, are
        accepted without doing any work.
        """

        resolved = classify_path(path) if kind is None else coerce_kind(kind)
        if resolved is None:
            logger.debug("Rejected tile request for %s with kind %r", path, kind)
            return False

        request = TileRequest.create(path, resolved)
        if self._cache.has_tile(request.content_hash):
            return True
        with self._pending_lock:
            if request.content_hash in self._pending:
                return True
            self._pending.add(request.content_hash)

        try:
            return self._dispatch(request)
        except Exception:  # noqa: BLE001 - callers never see tile failures
            logger.exception("Failed to queue tile request for %s", request.source_path)
            self._finished(request, None)
            return True

    def advance(self) -> Stage:
        """Advance the render pipeline by one editor tick."""

        return self._pipeline.advance()

    def invalidate(self, path: str | PathLike[str]) -> None:
        """Forget the tile for *path* so the next request regenerates it."""

        self._cache.forget(content_hash(path))

    def wait_for_images(self, timeout: float | None = None) -> bool:
        """Block until the resize worker has drained its queue."""

        return self._queue.join(timeout)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _dispatch(self, request: TileRequest) -> bool:
        kind = request.asset_kind
        if kind is AssetKind.IMAGE:
            if not self._queue.enqueue(request):
                logger.warning("Resize worker is shut down; dropping %s", request.source_path)
                self._finished(request, None)
            return True

        if kind.is_rendered:
            if not self._pipeline.submit(request):
                logger.debug("Render pipeline busy; %s waits in overflow", request.source_path)
            return True

        try:
            path = self._cache.copy_placeholder(request)
        except (OSError, TileError) as exc:
            logger.error("Failed to copy placeholder tile for %s: %s", request.source_path, exc)
            self._finished(request, None)
            return True
        self._finished(request, path)
        return True

    def _finished(self, request: TileRequest, path: Path | None) -> None:
        with self._pending_lock:
            self._pending.discard(request.content_hash)
        for listener in list(self._listeners):
            try:
                listener(request, path)
            except Exception:  # noqa: BLE001 - listener errors stay in the log
                logger.exception("Tile listener failed for %s", request.source_path)
