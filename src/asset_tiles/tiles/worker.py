"""Background worker that turns image assets into tiles."""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from enum import Enum
from pathlib import Path

from .cache import TileCache
from .encoder import TileEncoder
from .errors import DecodeFailure, EncodeFailure
from .requests import TileRequest
from .resampler import ImageResampler

__all__ = ["ResizeQueue", "ResizeWorker", "WorkerState"]

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[TileRequest, Path | None], None]


class WorkerState(str, Enum):
    """Lifecycle of the resize worker thread."""

    IDLE = "idle"
    PROCESSING = "processing"
    SHUTTING_DOWN = "shutting_down"


class ResizeQueue:
    """Pending image requests shared between the main tick and the worker.

    Every :meth:`enqueue` and every :meth:`shutdown` releases the semaphore
    exactly once, so the worker always wakes for the final shutdown signal
    even when the queue is already empty.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._signal = threading.Semaphore(0)
        self._items: deque[TileRequest] = deque()
        self._unfinished = 0
        self._shutdown = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    @property
    def is_shutdown(self) -> bool:
        with self._lock:
            return self._shutdown

    def enqueue(self, request: TileRequest) -> bool:
        """Queue *request*; returns ``False`` once shut down."""

        with self._lock:
            if self._shutdown:
                return False
            self._items.append(request)
            self._unfinished += 1
        self._signal.release()
        return True

    def take(self, timeout: float | None = None) -> TileRequest | None:
        """Block until a request is available; ``None`` means exit."""

        if not self._signal.acquire(timeout=timeout):
            return None
        with self._lock:
            if self._shutdown or not self._items:
                return None
            return self._items.popleft()

    def task_done(self) -> None:
        with self._lock:
            self._unfinished -= 1
            if self._unfinished <= 0:
                self._unfinished = 0
                self._idle.notify_all()

    def join(self, timeout: float | None = None) -> bool:
        """Wait until every queued request was processed."""

        with self._idle:
            return self._idle.wait_for(
                lambda: self._unfinished == 0 or self._shutdown,
                timeout=timeout,
            )

    def shutdown(self) -> list[TileRequest]:
        """Set the shutdown flag and deliver the final wake signal.

        Requests still waiting in the queue are removed and returned so the
        caller can report them as dropped.
        """

        with self._lock:
            if self._shutdown:
                return []
            self._shutdown = True
            discarded = list(self._items)
            self._items.clear()
            self._unfinished = max(0, self._unfinished - len(discarded))
            self._idle.notify_all()
        self._signal.release()
        return discarded


class ResizeWorker:
    """Single background thread that resamples and encodes image tiles.

    The worker never touches renderer state. Failures are logged and the
    texture placeholder is copied in place of the tile.
    """

    def __init__(
        self,
        queue: ResizeQueue,
        *,
        cache: TileCache,
        resampler: ImageResampler,
        encoder: TileEncoder,
        on_complete: CompletionCallback | None = None,
    ) -> None:
        self._queue = queue
        self._cache = cache
        self._resampler = resampler
        self._encoder = encoder
        self._on_complete = on_complete
        self._thread: threading.Thread | None = None
        self._state = WorkerState.IDLE

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._thread = threading.Thread(target=self._run, name="tile-resize", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Shut the queue down and wait for the thread to exit.

        Requests that were still queued are reported as dropped.
        """

        discarded = self._queue.shutdown()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        self._thread = None

        for request in discarded:
            logger.warning("Resize worker stopped before processing %s", request.source_path)
            self._notify(request, None)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------
    def process(self, request: TileRequest) -> Path:
        """Produce the tile for *request* and return the written path."""

        size = self._resampler.tile_size
        try:
            pixels = self._resampler.load(request.source_path)
            payload = self._encoder.encode(pixels, size, size)
        except DecodeFailure as exc:
            logger.error("Failed to load %s: %s", request.source_path, exc)
            return self._cache.copy_placeholder(request)
        except EncodeFailure as exc:
            logger.error("Failed to encode tile for %s: %s", request.source_path, exc)
            return self._cache.copy_placeholder(request)

        return self._cache.write(request, payload)

    def _run(self) -> None:
        logger.debug("Resize worker started")
        while True:
            request = self._queue.take()
            if request is None:
                break

            self._state = WorkerState.PROCESSING
            path: Path | None = None
            try:
                path = self.process(request)
            except Exception:  # noqa: BLE001 - a bad asset must not stop the worker
                logger.exception("Unexpected failure while creating tile for %s", request.source_path)
            finally:
                self._state = WorkerState.IDLE
                self._notify(request, path)
                self._queue.task_done()

        self._state = WorkerState.SHUTTING_DOWN
        logger.debug("Resize worker stopped")

    def _notify(self, request: TileRequest, path: Path | None) -> None:
        if self._on_complete is None:
            return
        try:
            self._on_complete(request, path)
        except Exception:  # noqa: BLE001 - listener errors stay in the log
            logger.exception("Tile completion callback failed for %s", request.source_path)
