"""Tests for the tile cache and the placeholder tiles."""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from asset_tiles.tiles.cache import (
    PLACEHOLDER_KINDS,
    PlaceholderSet,
    TileCache,
    placeholder_kind_for,
)
from asset_tiles.tiles.requests import AssetKind, TileRequest, content_hash


def test_tile_path_uses_content_hash(tile_cache: TileCache) -> None:
    expected = tile_cache.root / f"{content_hash('textures/a.tga')}.dds"

    assert tile_cache.path_for("textures\\a.tga") == expected
    assert tile_cache.path_for(TileRequest.create("textures/a.tga", AssetKind.IMAGE)) == expected


def test_write_records_hash_until_forgotten(tile_cache: TileCache) -> None:
    request = TileRequest.create("a.tga", AssetKind.IMAGE)
    assert tile_cache.has_tile(request.content_hash) is False

    path = tile_cache.write(request, b"DDS payload")

    assert path.read_bytes() == b"DDS payload"
    assert tile_cache.has_tile(request.content_hash) is True
    assert not list(path.parent.glob(".tile-*"))

    tile_cache.forget(request.content_hash)
    assert tile_cache.has_tile(request.content_hash) is False
    assert path.exists()


@pytest.mark.parametrize("name", PLACEHOLDER_KINDS)
def test_placeholders_are_generated_once(tmp_path: Path, name: str) -> None:
    placeholders = PlaceholderSet(tmp_path / "placeholders", tile_size=16)

    first = placeholders.path(name)
    stamp = first.stat().st_mtime_ns
    second = placeholders.path(name)

    assert first == second == tmp_path / "placeholders" / f"tile_{name}.dds"
    assert second.stat().st_mtime_ns == stamp
    with Image.open(first) as image:
        assert image.size == (16, 16)


def test_existing_placeholder_is_used_verbatim(tmp_path: Path) -> None:
    directory = tmp_path / "art"
    directory.mkdir()
    (directory / "tile_material.dds").write_bytes(b"studio artwork")
    placeholders = PlaceholderSet(directory, tile_size=16)
    cache = TileCache(tmp_path / "tiles", placeholders=placeholders)

    path = cache.copy_placeholder(TileRequest.create("stone.mat", AssetKind.MATERIAL))

    assert path.read_bytes() == b"studio artwork"
    assert cache.has_tile(content_hash("stone.mat"))


def test_unknown_placeholder_rejected(tmp_path: Path) -> None:
    with pytest.raises(KeyError):
        PlaceholderSet(tmp_path, tile_size=16).path("sound")


def test_placeholder_mapping() -> None:
    assert placeholder_kind_for(AssetKind.IMAGE) == "texture"
    assert placeholder_kind_for(AssetKind.MODEL) == "model"
    assert placeholder_kind_for(AssetKind.PREFAB) == "model"
    assert placeholder_kind_for(AssetKind.SHADER) == "shader"


def test_copy_placeholder_honours_explicit_name(tile_cache: TileCache) -> None:
    request = TileRequest.create("b.msh", AssetKind.MODEL)

    path = tile_cache.copy_placeholder(request, "texture")

    assert path.read_bytes() == tile_cache.placeholders.path("texture").read_bytes()
