from __future__ import annotations

import time
from pathlib import Path

import pytest

pytest.importorskip("PySide6.QtWidgets", exc_type=ImportError)

from asset_tiles.config import TileConfig
from asset_tiles.tiles.software import (
    SoftwareRenderer,
    SoftwareResourceLoader,
    SoftwareScene,
)
from asset_tiles.tiles.router import TileRouter
from asset_tiles.ui.tile_driver import TileTickDriver


@pytest.fixture()
def driver(qapp, tmp_path: Path):
    loader = SoftwareResourceLoader()
    scene = SoftwareScene(loader)
    router = TileRouter(
        loader=loader,
        scene=scene,
        renderer=SoftwareRenderer(scene),
        config=TileConfig(cache_root=tmp_path / "tiles", tile_size=16),
        closers=(loader.close,),
    )
    instance = TileTickDriver(router, interval_ms=1)
    yield instance
    instance.stop()
    instance.deleteLater()


def test_placeholder_tiles_emit_ready(driver: TileTickDriver) -> None:
    ready: list[tuple[str, str]] = []
    driver.tileReady.connect(lambda source, tile: ready.append((source, tile)))

    assert driver.router.submit("stone.mat") is True

    assert ready == [("stone.mat", driver.router.cache.path_for("stone.mat").as_posix())]


def test_timer_drives_pipeline_until_drop(qapp, driver: TileTickDriver, tmp_path: Path) -> None:
    dropped: list[str] = []
    driver.tileDropped.connect(dropped.append)
    source = (tmp_path / "missing.obj").as_posix()

    driver.start()
    assert driver.is_active()
    driver.router.submit(source)

    deadline = time.monotonic() + 10
    while not dropped and time.monotonic() < deadline:
        qapp.processEvents()
        time.sleep(0.005)

    assert dropped == [source]


def test_stop_halts_timer_and_worker(driver: TileTickDriver) -> None:
    driver.start()
    assert driver.router.worker.is_running

    driver.stop()

    assert not driver.is_active()
    assert not driver.router.worker.is_running


def test_stop_emits_dropped_for_queued_images(driver: TileTickDriver) -> None:
    dropped: list[str] = []
    driver.tileDropped.connect(dropped.append)

    driver.router.submit("textures/late.png")
    driver.stop()

    assert dropped == ["textures/late.png"]
