"""Exceptions raised while producing asset tiles."""

from __future__ import annotations

__all__ = ["DecodeFailure", "EncodeFailure", "LoadFailure", "TileError"]


class TileError(RuntimeError):
    """Base class for failures that prevent a tile from being produced."""


class LoadFailure(TileError):
    """Raised when a resource could not be loaded for rendering."""


class DecodeFailure(TileError):
    """Raised when a source image cannot be read or decoded."""


class EncodeFailure(TileError):
    """Raised when the block compressor rejects a pixel buffer."""
