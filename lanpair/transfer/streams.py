"""
Stream Adapters

The transfer pump only needs `await read(n)`, `await write(data)` and
`await close()`. aiofiles handles already look like that; TLS streams
are wrapped here.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import aiofiles

logger = logging.getLogger(__name__)


class StreamSource:
    """Readable side of a TLS connection."""

    def __init__(self, reader: asyncio.StreamReader,
                 writer: Optional[asyncio.StreamWriter] = None):
        self._reader = reader
        self._writer = writer

    async def read(self, size: int) -> bytes:
        return await self._reader.read(size)

    async def close(self):
        # The reader has no close of its own; closing the transport ends it
        if self._writer is not None:
            self._writer.close()
            await self._writer.wait_closed()


class StreamSink:
    """Writable side of a TLS connection."""

    def __init__(self, writer: asyncio.StreamWriter):
        self._writer = writer

    async def write(self, data: bytes) -> int:
        self._writer.write(data)
        await self._writer.drain()
        return len(data)

    async def close(self):
        self._writer.close()
        await self._writer.wait_closed()


async def open_file_source(path: Path):
    """Open a local file for upload."""
    return await aiofiles.open(Path(path), 'rb')


async def open_file_sink(path: Path):
    """Create (or truncate) a local file for download."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return await aiofiles.open(path, 'wb')
