"""Decode source images and resample them to the tile resolution."""

from __future__ import annotations

import io
import logging
from pathlib import Path

from PIL import Image

from .errors import DecodeFailure

__all__ = ["ImageResampler"]

logger = logging.getLogger(__name__)

_COMPRESSED_CONTAINERS = {".dds": "DDS"}


class ImageResampler:
    """Turn an image file into an RGBA buffer of a fixed square size."""

    def __init__(
        self,
        tile_size: int,
        *,
        resample: Image.Resampling = Image.Resampling.LANCZOS,
    ) -> None:
        if tile_size <= 0:
            raise ValueError("Tile size must be positive")
        self._tile_size = tile_size
        self._resample = resample

    @property
    def tile_size(self) -> int:
        return self._tile_size

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def decode(self, source_path: str | Path) -> Image.Image:
        """Return the fully decoded RGBA image stored at *source_path*.

        Block-compressed containers are decompressed to raw pixels; all other
        formats go through Pillow's generic format detection.
        """

        path = Path(source_path)
        try:
            payload = path.read_bytes()
        except OSError as exc:
            raise DecodeFailure(f"Unable to read {path!s}: {exc}") from exc

        container = _COMPRESSED_CONTAINERS.get(path.suffix.lower())
        formats = (container,) if container else None
        try:
            with Image.open(io.BytesIO(payload), formats=formats) as image:
                image.load()
                decoded = image.convert("RGBA")
        except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
            raise DecodeFailure(f"Unable to decode {path!s}: {exc}") from exc

        logger.debug("Decoded %s at %sx%s", path, decoded.width, decoded.height)
        return decoded

    def resample(self, image: Image.Image) -> bytes:
        """Return *image* resized to the tile resolution as RGBA8 bytes."""

        size = (self._tile_size, self._tile_size)
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        if image.size != size:
            image = image.resize(size, self._resample)
        return image.tobytes()

    def load(self, source_path: str | Path) -> bytes:
        """Decode and resample *source_path* in one step."""

        return self.resample(self.decode(source_path))
