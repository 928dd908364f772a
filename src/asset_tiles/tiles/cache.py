"""Derived-artifact cache for asset tiles and the placeholder tiles."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Final

from PIL import Image, ImageDraw

from .encoder import TileEncoder
from .requests import AssetKind, TileRequest, content_hash

__all__ = ["PLACEHOLDER_KINDS", "PlaceholderSet", "TileCache", "placeholder_kind_for"]

logger = logging.getLogger(__name__)

PLACEHOLDER_KINDS: Final[tuple[str, ...]] = ("texture", "model", "material", "shader")
"""Names of the placeholder tiles shipped with every cache."""

_PLACEHOLDER_BY_KIND: Final[dict[AssetKind, str]] = {
    AssetKind.IMAGE: "texture",
    AssetKind.MODEL: "model",
    AssetKind.PREFAB: "model",
    AssetKind.MATERIAL: "material",
    AssetKind.SHADER: "shader",
}

_PALETTE: Final[dict[str, tuple[tuple[int, int, int, int], tuple[int, int, int, int]]]] = {
    "texture": ((40, 44, 52, 255), (150, 160, 175, 255)),
    "model": ((18, 22, 28, 255), (120, 170, 220, 255)),
    "material": ((36, 28, 40, 255), (210, 150, 90, 255)),
    "shader": ((22, 34, 26, 255), (110, 200, 140, 255)),
}


def placeholder_kind_for(kind: AssetKind) -> str:
    """Return the placeholder tile used for assets of *kind*."""

    return _PLACEHOLDER_BY_KIND[kind]


class PlaceholderSet:
    """Provide the placeholder tiles copied in place of real tiles.

    Files named ``tile_<kind>.<ext>`` that already exist in *directory* are
    used verbatim. Missing ones are drawn once and written there.
    """

    def __init__(
        self,
        directory: Path,
        *,
        tile_size: int,
        encoder: TileEncoder | None = None,
        extension: str = "dds",
    ) -> None:
        self._directory = Path(directory)
        self._tile_size = tile_size
        self._encoder = encoder or TileEncoder()
        self._extension = extension
        self._lock = threading.Lock()

    @property
    def directory(self) -> Path:
        return self._directory

    def path(self, name: str) -> Path:
        """Return the placeholder file for *name*, creating it if needed."""

        if name not in PLACEHOLDER_KINDS:
            raise KeyError(f"Unknown placeholder tile {name!r}")

        candidate = self._directory / f"tile_{name}.{self._extension}"
        with self._lock:
            if not candidate.exists():
                payload = self._encoder.encode(
                    render_placeholder(name, self._tile_size).tobytes(),
                    self._tile_size,
                    self._tile_size,
                )
                _atomic_write(candidate, payload)
                logger.info("Generated placeholder tile %s", candidate)
        return candidate


class TileCache:
    """Persist encoded tiles under ``<root>/<hash>.<ext>``.

    The cache remembers which content hashes were written during the
    session so repeated requests for the same asset do not rewrite the file.
    """

    def __init__(
        self,
        root: Path,
        *,
        placeholders: PlaceholderSet,
        extension: str = "dds",
    ) -> None:
        self._root = Path(root)
        self._placeholders = placeholders
        self._extension = extension
        self._written: set[int] = set()
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def placeholders(self) -> PlaceholderSet:
        return self._placeholders

    def path_for(self, source_path: str | TileRequest) -> Path:
        """Return the cache location for *source_path*."""

        if isinstance(source_path, TileRequest):
            signature = source_path.content_hash
        else:
            signature = content_hash(source_path)
        return self._root / f"{signature}.{self._extension}"

    def has_tile(self, signature: int) -> bool:
        """Whether the tile for *signature* was written this session."""

        with self._lock:
            return signature in self._written

    def forget(self, signature: int) -> None:
        """Allow the tile for *signature* to be regenerated."""

        with self._lock:
            self._written.discard(signature)

    def write(self, request: TileRequest, payload: bytes) -> Path:
        """Write *payload* as the tile for *request* and return its path."""

        destination = self.path_for(request)
        _atomic_write(destination, payload)
        self._record(request)
        logger.debug("Wrote tile for %s to %s", request.source_path, destination)
        return destination

    def copy_placeholder(self, request: TileRequest, name: str | None = None) -> Path:
        """Copy the placeholder tile for *request* into the cache."""

        placeholder = self._placeholders.path(name or placeholder_kind_for(request.asset_kind))
        destination = self.path_for(request)
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(placeholder, destination)
        self._record(request)
        logger.debug("Copied placeholder %s for %s", placeholder.name, request.source_path)
        return destination

    def _record(self, request: TileRequest) -> None:
        with self._lock:
            self._written.add(request.content_hash)


def render_placeholder(name: str, size: int) -> Image.Image:
    """Draw the placeholder artwork for *name* at *size* pixels."""

    background, accent = _PALETTE[name]
    image = Image.new("RGBA", (size, size), background)
    draw = ImageDraw.Draw(image, "RGBA")
    inset = max(2, size // 8)
    border = max(1, size // 32)
    box = (inset, inset, size - inset - 1, size - inset - 1)

    if name == "texture":
        cell = max(1, (box[2] - box[0]) // 4)
        for row in range(4):
            for column in range(4):
                if (row + column) % 2:
                    continue
                left = box[0] + column * cell
                top = box[1] + row * cell
                draw.rectangle((left, top, left + cell - 1, top + cell - 1), fill=accent)
    elif name == "model":
        mid = size / 2
        radius = (box[2] - box[0]) / 2
        hexagon = [
            (mid, mid - radius),
            (mid + radius * 0.87, mid - radius / 2),
            (mid + radius * 0.87, mid + radius / 2),
            (mid, mid + radius),
            (mid - radius * 0.87, mid + radius / 2),
            (mid - radius * 0.87, mid - radius / 2),
        ]
        draw.polygon(hexagon, outline=accent, width=border)
        for corner in (hexagon[1], hexagon[3], hexagon[5]):
            draw.line((mid, mid, *corner), fill=accent, width=border)
    elif name == "material":
        draw.ellipse(box, fill=accent)
    else:
        step = max(2, size // 8)
        for offset in range(-size, size, step * 2):
            draw.line((box[0] + offset, box[3], box[0] + offset + size, box[3] - size), fill=accent, width=border)
        draw.rectangle(box, outline=accent, width=border)

    return image


def _atomic_write(destination: Path, payload: bytes) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=".tile-", dir=destination.parent)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
        os.replace(temp_name, destination)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise
