"""Top-level package for asset-tiles.

Asset tiles are small fixed-size previews generated in the background for
images, meshes and prefabs and persisted to a derived-artifact cache.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
