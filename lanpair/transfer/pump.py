"""
Transfer Pump

Design Decision: Copy Strategy
==============================

Options Considered:
1. Read the whole payload, then write it
   - Simple, but memory grows with the file
2. Fixed-size chunk loop, one read and one write in flight
   - Constant memory
   - Natural place to report progress and poll cancellation

Decision: 4KB chunk loop on a single asyncio task
- read -> write -> progress -> read ...
- Cancellation is a flag checked between steps; an operation already
  awaited is allowed to finish but nothing is scheduled after it
- Reads never ask for more than the declared size, so the byte count
  cannot overshoot it

Outcomes:
- EOF (or declared size reached) with every byte copied -> SUCCEEDED
- EOF before the declared size                         -> FAILED("incomplete transfer")
- I/O error or closed handle on either side            -> FAILED(<error>)
- cancel()                                             -> CANCELLED
"""

import asyncio
import logging
import time
import uuid
from typing import Any, Optional, Tuple

from ..events import EventEmitter, TransferEvent

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096

INCOMPLETE_TRANSFER = "incomplete transfer"


class Transfer(EventEmitter):
    """
    Copies `size` bytes from source to sink.

    source must provide `await read(n)`, sink `await write(data)`; both
    may provide `close()`. The transfer owns both and closes them when
    it stops.
    """

    def __init__(self, source, sink, size: int, chunk_size: int = CHUNK_SIZE):
        super().__init__()
        if size < 0:
            raise ValueError(f"Transfer size must be >= 0, got {size}")
        if chunk_size <= 0:
            raise ValueError(f"Chunk size must be > 0, got {chunk_size}")

        self.id = str(uuid.uuid4())
        self.size = size
        self.chunk_size = chunk_size
        self.bytes_transferred = 0
        self.cancelled = False
        self.result: Optional[TransferEvent] = None
        self.start_time: Optional[float] = None

        self._source = source
        self._sink = sink
        self._task: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return (f"Transfer({self.id[:8]}, {self.bytes_transferred}/{self.size} bytes, "
                f"result={self.result.value if self.result else None})")

    @property
    def progress_percent(self) -> float:
        if self.size == 0:
            return 100.0
        return self.bytes_transferred / self.size * 100

    @property
    def elapsed_seconds(self) -> float:
        if self.start_time is None:
            return 0.0
        return time.time() - self.start_time

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Emit STARTED and schedule the copy loop."""
        if self._task is not None:
            raise RuntimeError("Transfer already started")
        if self.cancelled:
            raise RuntimeError("Transfer was cancelled before it started")

        self.start_time = time.time()
        logger.info(f"Transfer {self.id[:8]} started ({self.size:,} bytes)")
        self.emit(TransferEvent.STARTED)
        self._task = asyncio.create_task(self._pump())
        return self._task

    def cancel(self):
        """Stop after the step in flight. Emits CANCELLED once."""
        if self.cancelled or self.result is not None:
            return

        self.cancelled = True
        self.result = TransferEvent.CANCELLED
        logger.info(f"Transfer {self.id[:8]} cancelled at "
                    f"{self.bytes_transferred:,}/{self.size:,} bytes")
        self.emit(TransferEvent.CANCELLED)

    async def wait(self) -> Optional[TransferEvent]:
        """Wait for the copy loop to stop and return the terminal event."""
        if self._task is None:
            raise RuntimeError("Transfer not started")
        await self._task
        return self.result

    # === Copy loop ===

    async def _pump(self):
        try:
            outcome = await self._run()
        finally:
            await self._release()

        if outcome is None or self.cancelled:
            return

        event, args = outcome
        self.result = event
        if event == TransferEvent.SUCCEEDED:
            logger.info(f"Completed transfer of {self.size:,} bytes")
        else:
            logger.warning(f"Transfer {self.id[:8]} failed: {args[0]}")
        self.emit(event, *args)

    async def _run(self) -> Optional[Tuple[TransferEvent, Tuple[Any, ...]]]:
        while True:
            if self.cancelled:
                return None

            remaining = self.size - self.bytes_transferred
            if remaining > 0:
                try:
                    chunk = await self._source.read(min(self.chunk_size, remaining))
                except (OSError, ValueError) as e:
                    return TransferEvent.FAILED, (f"read error: {e}",)
            else:
                chunk = b''

            if self.cancelled:
                return None

            if not chunk:
                if self.bytes_transferred < self.size:
                    return TransferEvent.FAILED, (INCOMPLETE_TRANSFER,)
                return TransferEvent.SUCCEEDED, ()

            try:
                written = await self._sink.write(chunk)
            except (OSError, ValueError) as e:
                return TransferEvent.FAILED, (f"write error: {e}",)

            self.bytes_transferred += written if written is not None else len(chunk)

            if self.cancelled:
                return None

            logger.debug(f"Transfer {self.id[:8]}: {self.bytes_transferred}/{self.size}")
            self.emit(TransferEvent.PROGRESS, self.progress_percent)

    async def _release(self):
        for name, stream in (('source', self._source), ('sink', self._sink)):
            close = getattr(stream, 'close', None)
            if close is None:
                continue
            try:
                result = close()
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Error closing transfer {name}: {e}")

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'size': self.size,
            'bytes_transferred': self.bytes_transferred,
            'progress_percent': self.progress_percent,
            'elapsed_seconds': self.elapsed_seconds,
            'cancelled': self.cancelled,
            'result': self.result.value if self.result else None,
        }
