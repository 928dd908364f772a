"""Block-compress RGBA buffers into the on-disk tile format."""

from __future__ import annotations

import io
import logging

from PIL import Image

from .errors import EncodeFailure

__all__ = ["SUPPORTED_PIXEL_FORMATS", "TileEncoder"]

logger = logging.getLogger(__name__)

SUPPORTED_PIXEL_FORMATS: tuple[str, ...] = ("DXT1", "DXT3", "DXT5")
"""Block compression formats the encoder can emit."""


class TileEncoder:
    """Compress fixed-size RGBA buffers into DDS payloads."""

    def __init__(self, pixel_format: str = "DXT5") -> None:
        normalized = str(pixel_format).strip().upper()
        if normalized not in SUPPORTED_PIXEL_FORMATS:
            raise ValueError(
                f"Unsupported pixel format {pixel_format!r}; expected one of {', '.join(SUPPORTED_PIXEL_FORMATS)}"
            )
        self._pixel_format = normalized

    @property
    def pixel_format(self) -> str:
        return self._pixel_format

    def encode(self, pixels: bytes | bytearray | memoryview, width: int, height: int) -> bytes:
        """Return the DDS encoding of an RGBA8 *pixels* buffer.

        Raises :class:`EncodeFailure` when the buffer does not match the
        requested dimensions or the compressor rejects the parameters.
        """

        if width <= 0 or height <= 0:
            raise EncodeFailure(f"Invalid tile dimensions {width}x{height}")

        expected = width * height * 4
        data = bytes(pixels)
        if len(data) != expected:
            raise EncodeFailure(
                f"Pixel buffer holds {len(data)} bytes, expected {expected} for {width}x{height} RGBA"
            )

        buffer = io.BytesIO()
        try:
            image = Image.frombytes("RGBA", (width, height), data)
            image.save(buffer, format="DDS", pixel_format=self._pixel_format)
        except (OSError, ValueError, MemoryError) as exc:
            raise EncodeFailure(f"Unable to compress {width}x{height} tile: {exc}") from exc

        payload = buffer.getvalue()
        logger.debug("Encoded %sx%s tile as %s (%d bytes)", width, height, self._pixel_format, len(payload))
        return payload
