"""Shared fixtures: certificates, in-memory streams and a loopback control peer."""

import asyncio
import socket
from typing import Optional

import pytest

from lanpair.protocol.certificate import LocalCertificate
from lanpair.protocol.tls import server_context


@pytest.fixture(scope="session")
def cert_a(tmp_path_factory):
    return LocalCertificate.generate(tmp_path_factory.mktemp("device-a"), "device-a")


@pytest.fixture(scope="session")
def cert_b(tmp_path_factory):
    return LocalCertificate.generate(tmp_path_factory.mktemp("device-b"), "device-b")


@pytest.fixture(scope="session")
def cert_c(tmp_path_factory):
    return LocalCertificate.generate(tmp_path_factory.mktemp("device-c"), "device-c")


class MemorySource:
    """Readable stream over a bytes buffer."""

    def __init__(self, data: bytes):
        self._data = data
        self._offset = 0
        self.closed = False
        self.reads = 0

    async def read(self, size: int) -> bytes:
        self.reads += 1
        chunk = self._data[self._offset:self._offset + size]
        self._offset += len(chunk)
        return chunk

    async def close(self):
        self.closed = True


class MemorySink:
    """Writable stream collecting bytes."""

    def __init__(self):
        self.data = bytearray()
        self.closed = False

    async def write(self, data: bytes) -> int:
        self.data.extend(data)
        return len(data)

    async def close(self):
        self.closed = True


class GatedSource(MemorySource):
    """MemorySource whose reads wait until the gate is opened."""

    def __init__(self, data: bytes):
        super().__init__(data)
        self.gate = asyncio.Event()
        self.waiting = asyncio.Event()

    async def read(self, size: int) -> bytes:
        self.waiting.set()
        await self.gate.wait()
        return await super().read(size)


class FailingSink(MemorySink):
    async def write(self, data: bytes) -> int:
        raise ConnectionResetError("peer reset")


class ClosedFileSink(MemorySink):
    """Behaves like a file handle that was closed underneath the transfer."""

    async def write(self, data: bytes) -> int:
        raise ValueError("I/O operation on closed file.")


class ControlPeer:
    """
    The accepting end of a control channel.

    Reads the plaintext identity line byte by byte (so no TLS bytes are
    consumed), then upgrades the same socket to server-side TLS.
    """

    def __init__(self, certificate: LocalCertificate):
        self.certificate = certificate
        self.greeting = b''
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

    def start(self) -> int:
        self._listener.bind(('127.0.0.1', 0))
        self._listener.listen(1)
        self._listener.setblocking(False)
        return self._listener.getsockname()[1]

    async def accept(self, greeting: bool = True):
        loop = asyncio.get_running_loop()
        sock, _ = await loop.sock_accept(self._listener)
        sock.setblocking(False)

        if greeting:
            while not self.greeting.endswith(b'\n'):
                byte = await loop.sock_recv(sock, 1)
                if not byte:
                    break
                self.greeting += byte

        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader)
        transport, _ = await loop.connect_accepted_socket(
            lambda: protocol, sock, ssl=server_context(self.certificate)
        )
        self.reader = reader
        self.writer = asyncio.StreamWriter(transport, protocol, reader, loop)

    async def send_line(self, line: bytes):
        self.writer.write(line)
        await self.writer.drain()

    async def close(self):
        if self.writer is not None:
            self.writer.close()
            try:
                await asyncio.wait_for(self.writer.wait_closed(), 5)
            except (OSError, asyncio.TimeoutError):
                pass
        self._listener.close()


@pytest.fixture
def control_peer(cert_b):
    peer = ControlPeer(cert_b)
    yield peer
    peer._listener.close()


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]
