"""Configuration helpers for the tile generation subsystem."""

from __future__ import annotations

import os
from dataclasses import dataclass
from os import PathLike
from pathlib import Path
from typing import Final

__all__ = [
    "CACHE_ROOT_ENV_VAR",
    "DEFAULT_CACHE_ROOT",
    "DEFAULT_READBACK_FRAMES",
    "DEFAULT_RENDER_CAPACITY",
    "DEFAULT_TILE_SIZE",
    "READBACK_FRAMES_ENV_VAR",
    "TILE_SIZE_ENV_VAR",
    "TileConfig",
    "configure",
    "get_config",
]

CACHE_ROOT_ENV_VAR: Final[str] = "ASSET_TILES_CACHE_PATH"
"""Environment variable that overrides the default tile cache location."""

TILE_SIZE_ENV_VAR: Final[str] = "ASSET_TILES_SIZE"
"""Environment variable that overrides the tile edge length in pixels."""

READBACK_FRAMES_ENV_VAR: Final[str] = "ASSET_TILES_READBACK_FRAMES"
"""Environment variable that overrides the GPU read-back frame delay."""

DEFAULT_CACHE_ROOT: Final[Path] = Path(".asset_tiles")
"""Default cache directory, relative to the working directory."""

DEFAULT_TILE_SIZE: Final[int] = 128
"""Edge length of the square tiles written to the cache."""

DEFAULT_RENDER_CAPACITY: Final[int] = 8
"""Number of model/prefab requests admitted into the render pipeline."""

DEFAULT_READBACK_FRAMES: Final[int] = 2
"""Completed frames to wait before a GPU read-back buffer is valid."""


@dataclass(frozen=True, slots=True)
class TileConfig:
    """Runtime configuration for tile generation."""

    cache_root: Path
    tile_size: int = DEFAULT_TILE_SIZE
    render_capacity: int = DEFAULT_RENDER_CAPACITY
    readback_frames: int = DEFAULT_READBACK_FRAMES
    extension: str = "dds"
    pixel_format: str = "DXT5"
    placeholder_root: Path | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "cache_root", _coerce_path(self.cache_root))
        if self.placeholder_root is not None:
            object.__setattr__(
                self, "placeholder_root", _coerce_path(self.placeholder_root)
            )

        if int(self.tile_size) <= 0:
            raise ValueError("Tile size must be a positive number of pixels")
        if int(self.render_capacity) <= 0:
            raise ValueError("Render capacity must admit at least one request")
        if int(self.readback_frames) < 0:
            raise ValueError("Read-back frame delay cannot be negative")
        object.__setattr__(self, "tile_size", int(self.tile_size))
        object.__setattr__(self, "render_capacity", int(self.render_capacity))
        object.__setattr__(self, "readback_frames", int(self.readback_frames))

        extension = str(self.extension).strip().lstrip(".").lower()
        if not extension:
            raise ValueError("Tile file extension cannot be empty")
        object.__setattr__(self, "extension", extension)

    @property
    def placeholder_dir(self) -> Path:
        """Directory holding the placeholder tiles."""

        if self.placeholder_root is not None:
            return self.placeholder_root
        return self.cache_root / "placeholders"


_CONFIG: TileConfig | None = None


def get_config() -> TileConfig:
    """Return the cached :class:`TileConfig` instance."""

    global _CONFIG
    if _CONFIG is None:
        _CONFIG = _build_config()
    return _CONFIG


def configure(
    *,
    cache_root: str | Path | None = None,
    tile_size: int | None = None,
    readback_frames: int | None = None,
    render_capacity: int | None = None,
) -> TileConfig:
    """Rebuild the global configuration with optional overrides."""

    global _CONFIG
    _CONFIG = _build_config(
        cache_root=cache_root,
        tile_size=tile_size,
        readback_frames=readback_frames,
        render_capacity=render_capacity,
    )
    return _CONFIG


def _build_config(
    *,
    cache_root: str | Path | None = None,
    tile_size: int | None = None,
    readback_frames: int | None = None,
    render_capacity: int | None = None,
) -> TileConfig:
    if cache_root is None:
        cache_root = os.environ.get(CACHE_ROOT_ENV_VAR) or DEFAULT_CACHE_ROOT
    if tile_size is None:
        tile_size = _env_int(TILE_SIZE_ENV_VAR, DEFAULT_TILE_SIZE)
    if readback_frames is None:
        readback_frames = _env_int(READBACK_FRAMES_ENV_VAR, DEFAULT_READBACK_FRAMES)

    return TileConfig(
        cache_root=_coerce_path(cache_root),
        tile_size=tile_size,
        readback_frames=readback_frames,
        render_capacity=DEFAULT_RENDER_CAPACITY if render_capacity is None else render_capacity,
    )


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _coerce_path(value: str | Path | PathLike[str]) -> Path:
    if isinstance(value, Path):
        candidate = value
    else:
        text = str(value).strip()
        if not text:
            raise ValueError("Cache path overrides cannot be empty")
        candidate = Path(text)
    return candidate.expanduser().resolve()
