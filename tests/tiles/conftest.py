"""Fake engine collaborators used to exercise the tile pipeline without a GPU."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from itertools import count
from pathlib import Path

import pytest
from PIL import Image

from asset_tiles.config import TileConfig
from asset_tiles.tiles.cache import PlaceholderSet, TileCache
from asset_tiles.tiles.camera import BoundingBox, CameraTransform
from asset_tiles.tiles.encoder import TileEncoder
from asset_tiles.tiles.pipeline import StagedRenderPipeline
from asset_tiles.tiles.requests import TileRequest

UNIT_BOX = BoundingBox((-0.5, -0.5, -0.5), (0.5, 0.5, 0.5))


@dataclass(eq=False)
class FakeHandle:
    path: str
    ready_after: int = 0
    fail: bool = False
    polls: int = 0


class FakeLoader:
    """Resource loader whose handles become ready after a number of polls."""

    def __init__(self) -> None:
        self.ready_after: dict[str, int] = {}
        self.default_ready_after = 0
        self.failures: set[str] = set()
        self.loaded: list[str] = []
        self.unloaded: list[str] = []

    def make_handle(self, path: str, *, ready_after: int = 0, fail: bool = False) -> FakeHandle:
        return FakeHandle(path, ready_after=ready_after, fail=fail)

    def load(self, path: str) -> FakeHandle:
        self.loaded.append(path)
        return self.make_handle(
            path,
            ready_after=self.ready_after.get(path, self.default_ready_after),
            fail=path in self.failures,
        )

    def unload(self, handle: FakeHandle) -> None:
        self.unloaded.append(handle.path)

    def is_ready(self, handle: FakeHandle) -> bool:
        if handle.fail:
            return False
        handle.polls += 1
        return handle.polls > handle.ready_after

    def is_failure(self, handle: FakeHandle) -> bool:
        return handle.fail

    @property
    def live(self) -> int:
        return len(self.loaded) - len(self.unloaded)


class FakeScene:
    """Scene that tracks live entities so tests can assert serialisation."""

    def __init__(self, loader: FakeLoader) -> None:
        self.loader = loader
        self.bounds: dict[str, BoundingBox] = {}
        self.prefab_models: dict[str, FakeHandle] = {}
        self.empty_prefabs: set[str] = set()
        self.entities: dict[int, FakeHandle] = {}
        self.cameras: list[CameraTransform] = []
        self.destroyed: list[int] = []
        self.max_live = 0
        self._ids = count(1)

    def instantiate(self, resource: FakeHandle) -> int:
        entity = next(self._ids)
        self.entities[entity] = resource
        self.max_live = max(self.max_live, len(self.entities))
        return entity

    def destroy(self, entity: int) -> None:
        self.entities.pop(entity)
        self.destroyed.append(entity)

    def set_camera_transform(self, camera: CameraTransform) -> None:
        self.cameras.append(camera)

    def bounding_volume(self, resource: FakeHandle) -> BoundingBox:
        return self.bounds.get(resource.path, UNIT_BOX)

    def primary_model(self, entity: int) -> FakeHandle | None:
        prefab = self.entities[entity]
        if prefab.path in self.empty_prefabs:
            return None
        return self.prefab_models.setdefault(prefab.path, FakeHandle(f"{prefab.path}:model"))


class FakeRenderer:
    """Offscreen renderer producing a solid color target."""

    def __init__(self, color: tuple[int, int, int, int] = (0, 255, 0, 255)) -> None:
        self.color = color
        self.size = (0, 0)
        self.renders = 0
        self.textures: set[int] = set()
        self.destroyed: list[int] = []
        self.max_live = 0
        self.fail_render = False
        self._ids = count(1)

    def resize(self, width: int, height: int) -> None:
        self.size = (width, height)

    def render(self) -> None:
        if self.fail_render:
            raise RuntimeError("device lost")
        self.renders += 1

    def blit_to_readable_texture(self) -> int:
        texture = next(self._ids)
        self.textures.add(texture)
        self.max_live = max(self.max_live, len(self.textures))
        return texture

    def readback(self, texture: int) -> bytearray:
        assert texture in self.textures
        return bytearray(Image.new("RGBA", self.size, self.color).tobytes())

    def destroy_texture(self, texture: int) -> None:
        self.textures.remove(texture)
        self.destroyed.append(texture)


class RecordingEncoder(TileEncoder):
    """Encoder that remembers every call and can be told to fail."""

    def __init__(self) -> None:
        super().__init__("DXT5")
        self.calls: list[tuple[int, int]] = []
        self.fail = False

    def encode(self, pixels, width, height):  # type: ignore[override]
        self.calls.append((width, height))
        if self.fail:
            return super().encode(b"", width, height)
        return super().encode(pixels, width, height)


@dataclass
class PipelineHarness:
    pipeline: StagedRenderPipeline
    loader: FakeLoader
    scene: FakeScene
    renderer: FakeRenderer
    encoder: RecordingEncoder
    cache: TileCache
    completed: list[tuple[TileRequest, Path | None]] = field(default_factory=list)

    def run(self, limit: int = 500) -> int:
        """Advance until nothing is pending and return the number of ticks."""

        ticks = 0
        while self.pipeline.pending() and ticks < limit:
            self.pipeline.advance()
            ticks += 1
        return ticks


@pytest.fixture()
def tile_config(tmp_path: Path) -> TileConfig:
    return TileConfig(cache_root=tmp_path / "tiles", tile_size=16)


@pytest.fixture()
def tile_cache(tile_config: TileConfig) -> TileCache:
    placeholders = PlaceholderSet(tile_config.placeholder_dir, tile_size=tile_config.tile_size)
    return TileCache(tile_config.cache_root, placeholders=placeholders)


@pytest.fixture()
def fake_loader() -> FakeLoader:
    return FakeLoader()


@pytest.fixture()
def fake_scene(fake_loader: FakeLoader) -> FakeScene:
    return FakeScene(fake_loader)


@pytest.fixture()
def fake_renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture()
def make_pipeline(
    tile_config: TileConfig,
    tile_cache: TileCache,
    fake_loader: FakeLoader,
    fake_scene: FakeScene,
    fake_renderer: FakeRenderer,
) -> Callable[..., PipelineHarness]:
    """Return a factory building a pipeline around the fake collaborators."""

    def factory(*, capacity: int = 8, readback_frames: int = 2) -> PipelineHarness:
        encoder = RecordingEncoder()
        completed: list[tuple[TileRequest, Path | None]] = []
        pipeline = StagedRenderPipeline(
            loader=fake_loader,
            scene=fake_scene,
            renderer=fake_renderer,
            encoder=encoder,
            cache=tile_cache,
            tile_size=tile_config.tile_size,
            capacity=capacity,
            readback_frames=readback_frames,
            on_complete=lambda request, path: completed.append((request, path)),
        )
        return PipelineHarness(
            pipeline, fake_loader, fake_scene, fake_renderer, encoder, tile_cache, completed
        )

    return factory
