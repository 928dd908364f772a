"""Qt integration for the tile subsystem."""

from __future__ import annotations

from .tile_driver import TileTickDriver

__all__ = ["TileTickDriver"]
