"""Drive the tile render pipeline from the Qt event loop."""

from __future__ import annotations

import logging
from pathlib import Path

from PySide6.QtCore import QObject, QTimer, Signal, Slot

from ..tiles.requests import TileRequest
from ..tiles.router import TileRouter

__all__ = ["DEFAULT_TICK_INTERVAL_MS", "TileTickDriver"]

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL_MS = 16
"""Interval between pipeline ticks, roughly one frame at 60 Hz."""


class TileTickDriver(QObject):
    """Advance a :class:`TileRouter` once per timer tick.

    Finished tiles are re-emitted through :attr:`tileReady` with the source
    path and the cache path. Completions reported by the resize worker cross
    threads through Qt's queued signal delivery.
    """

    tileReady = Signal(str, str)
    tileDropped = Signal(str)

    def __init__(
        self,
        router: TileRouter,
        *,
        interval_ms: int = DEFAULT_TICK_INTERVAL_MS,
        parent: QObject | None = None,
    ) -> None:
        super().__init__(parent)
        self._router = router
        self._timer = QTimer(self)
        self._timer.setInterval(max(0, int(interval_ms)))
        self._timer.timeout.connect(self.tick)
        router.add_listener(self._on_tile_finished)

    @property
    def router(self) -> TileRouter:
        return self._router

    def is_active(self) -> bool:
        return self._timer.isActive()

    def start(self) -> None:
        """Start the resize worker and the tick timer."""

        self._router.start()
        self._timer.start()

    def stop(self) -> None:
        """Stop ticking and shut the resize worker down.

        Image requests still queued are emitted through :attr:`tileDropped`.
        """

        self._timer.stop()
        self._router.shutdown()
        self._router.remove_listener(self._on_tile_finished)

    @Slot()
    def tick(self) -> None:
        self._router.advance()

    def _on_tile_finished(self, request: TileRequest, path: Path | None) -> None:
        if path is None:
            logger.debug("Tile dropped for %s", request.source_path)
            self.tileDropped.emit(request.source_path)
            return
        self.tileReady.emit(request.source_path, path.as_posix())
