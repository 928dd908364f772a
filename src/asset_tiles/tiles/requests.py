"""Tile request records and asset classification helpers."""

from __future__ import annotations

import zlib
from dataclasses import dataclass
from enum import Enum
from os import PathLike
from pathlib import PurePath
from typing import Final

__all__ = [
    "AssetKind",
    "IMAGE_EXTENSIONS",
    "MODEL_EXTENSIONS",
    "TileRequest",
    "classify_path",
    "coerce_kind",
    "content_hash",
    "normalize_source_path",
]


class AssetKind(str, Enum):
    """Kinds of assets that can be represented by a tile."""

    IMAGE = "image"
    MODEL = "model"
    PREFAB = "prefab"
    MATERIAL = "material"
    SHADER = "shader"

    @property
    def is_rendered(self) -> bool:
        """Whether tiles of this kind go through the render pipeline."""

        return self in (AssetKind.MODEL, AssetKind.PREFAB)


IMAGE_EXTENSIONS: Final[frozenset[str]] = frozenset(
    {".dds", ".tga", ".png", ".jpg", ".jpeg", ".bmp", ".gif", ".tif", ".tiff", ".webp"}
)
"""Extensions decoded by the background resize worker."""

MODEL_EXTENSIONS: Final[frozenset[str]] = frozenset(
    {".msh", ".obj", ".stl", ".ply", ".glb", ".gltf", ".off", ".3mf"}
)
"""Extensions rendered as a single model instance."""

_KIND_BY_EXTENSION: Final[dict[str, AssetKind]] = {
    **{suffix: AssetKind.IMAGE for suffix in IMAGE_EXTENSIONS},
    **{suffix: AssetKind.MODEL for suffix in MODEL_EXTENSIONS},
    ".fab": AssetKind.PREFAB,
    ".mat": AssetKind.MATERIAL,
    ".shd": AssetKind.SHADER,
    ".sc": AssetKind.SHADER,
}


@dataclass(frozen=True, slots=True)
class TileRequest:
    """A request to produce the tile for a single asset."""

    source_path: str
    asset_kind: AssetKind
    content_hash: int

    @classmethod
    def create(cls, path: str | PathLike[str], kind: AssetKind) -> "TileRequest":
        """Build a request for *path*, deriving its cache key."""

        source = normalize_source_path(path)
        return cls(source, kind, content_hash(source))


def normalize_source_path(path: str | PathLike[str]) -> str:
    """Return *path* as a forward-slash separated string."""

    return str(path).replace("\\", "/")


def content_hash(path: str | PathLike[str]) -> int:
    """Return the unsigned 32-bit cache key for *path*."""

    return zlib.crc32(normalize_source_path(path).encode("utf-8")) & 0xFFFFFFFF


def classify_path(path: str | PathLike[str]) -> AssetKind | None:
    """Return the asset kind implied by the extension of *path*."""

    suffix = PurePath(normalize_source_path(path)).suffix.lower()
    return _KIND_BY_EXTENSION.get(suffix)


def coerce_kind(kind: object) -> AssetKind | None:
    """Interpret *kind* as an :class:`AssetKind` when possible."""

    if isinstance(kind, AssetKind):
        return kind
    if isinstance(kind, str):
        try:
            return AssetKind(kind.strip().lower())
        except ValueError:
            return None
    return None
