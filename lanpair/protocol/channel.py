"""
LAN Channel

Design Decision: Connection Setup
=================================

Control channel (connect-out):
1. TCP connect to the peer
2. Enable aggressive keepalive (10s idle / 5s interval / 3 probes)
3. Send our identity packet in plaintext so the peer knows who is calling
4. Upgrade the same socket to TLS in place, presenting our certificate
5. Apply the pinning decision to the peer certificate
6. Exchange newline-delimited packets

Data channel (transfer roles):
- Same socket/keepalive/TLS steps, no plaintext greeting
- Either connect-out or listen-and-accept, chosen at construction
- After the handshake the raw TLS streams are handed to a stream
  endpoint instead of the packet reader

State Machine:
```
IDLE -> CONNECTING -> HANDSHAKING -> CONNECTED -> CLOSED
```
Any state may move straight to CLOSED, on failure or on close().
"""

import asyncio
import logging
import socket
import ssl
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from ..events import ChannelEvent, EventEmitter
from .certificate import LocalCertificate
from .packet import Packet, PacketParseError
from .tls import client_context, server_context
from .trust import PeerTrust

logger = logging.getLogger(__name__)

DEFAULT_PORT = 1716

# Upload channels walk this range looking for a free port
UPLOAD_PORT_MIN = 1739
UPLOAD_PORT_MAX = 1764

MAX_PACKET_SIZE = 1024 * 1024  # 1MB per line

# Upper bound for a graceful TLS shutdown during close()
CLOSE_TIMEOUT = 5.0


class ConnectError(ConnectionError):
    """Socket or TLS failure while connecting, accepting or handshaking."""


class TrustError(ConnectError):
    """The peer presented a certificate other than the pinned one."""


class ChannelRole(Enum):
    """How the channel obtains its socket."""
    CONNECT = "connect"
    LISTEN = "listen"


class ChannelState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    CONNECTED = "connected"
    CLOSED = "closed"


@dataclass
class KeepaliveConfig:
    """TCP keepalive tuning, in seconds / probe count."""
    idle: int = 10
    interval: int = 5
    count: int = 3


class LanChannel(EventEmitter):
    """
    One TLS connection to a peer device.

    Without an endpoint the channel speaks framed packets and emits
    RECEIVED for every line. With an endpoint (see lanpair.transfer) it
    exposes the raw TLS streams as `source` / `sink` instead.

    A channel is used for exactly one connection attempt.
    """

    def __init__(self, host: str, port: int, certificate: LocalCertificate,
                 trust: PeerTrust, identity: Optional[Packet] = None,
                 role: ChannelRole = ChannelRole.CONNECT, endpoint=None,
                 port_ceiling: int = UPLOAD_PORT_MAX,
                 keepalive: Optional[KeepaliveConfig] = None,
                 max_packet_size: int = MAX_PACKET_SIZE):
        super().__init__()
        self.host = host
        self.port = port
        self.certificate = certificate
        self.trust = trust
        self.identity = identity
        self.role = role
        self.endpoint = endpoint
        self.port_ceiling = port_ceiling
        self.keepalive = keepalive or KeepaliveConfig()
        self.max_packet_size = max_packet_size

        self.state = ChannelState.IDLE
        self.remote_address: Optional[Tuple[str, int]] = None
        self.peer_certificate: Optional[bytes] = None

        # Raw stream pair, set when an endpoint is wired
        self.source = None
        self.sink = None

        self._socket: Optional[socket.socket] = None
        self._listener: Optional[socket.socket] = None
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._monitor: Optional[asyncio.Task] = None
        self._pending: Optional[asyncio.Future] = None
        self._closed = False

    def __repr__(self) -> str:
        return (f"LanChannel({self.role.value} {self.host}:{self.port}, "
                f"state={self.state.value})")

    @property
    def is_connected(self) -> bool:
        return self.state == ChannelState.CONNECTED

    @property
    def framed(self) -> bool:
        return self.endpoint is None

    # === Lifecycle ===

    async def open(self):
        """
        Connect (or listen and accept), handshake and apply the trust decision.

        Raises:
            ConnectError: on any socket/TLS failure; TrustError when the
                peer certificate does not match the pinned one. The channel
                is closed before the error propagates.
        """
        if self.state != ChannelState.IDLE:
            raise ConnectError(f"Channel cannot be reopened (state={self.state.value})")

        try:
            # close() cancels this task to abort a pending accept/connect/handshake
            self._pending = asyncio.ensure_future(self._setup())
            try:
                await self._pending
            finally:
                self._pending = None
            if self._closed:
                raise asyncio.CancelledError()

            self._verify_peer()
            self._established()

        except asyncio.CancelledError:
            if self._closed:
                logger.info(f"Channel to {self.host}:{self.port} closed while connecting")
                raise ConnectError(
                    f"Channel to {self.host}:{self.port} closed while connecting"
                ) from None
            await self.close()
            raise
        except ConnectError as e:
            logger.error(f"Error connecting to {self.host}:{self.port}: {e}")
            await self.close()
            raise
        except OSError as e:
            logger.error(f"Error connecting to {self.host}:{self.port}: {e}")
            await self.close()
            raise ConnectError(f"Error connecting to {self.host}:{self.port}: {e}") from e

    async def _setup(self):
        if self.role == ChannelRole.LISTEN:
            if self._listener is None:
                await self.listen()
            await self._accept()
        else:
            await self._connect()

    async def listen(self) -> int:
        """
        Bind the listening socket, walking ports upward on failure.

        Returns:
            The bound port (also emitted as LISTENING)
        """
        port = self.port
        while True:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                sock.bind((self.host, port))
            except OSError as e:
                sock.close()
                if port >= self.port_ceiling:
                    raise ConnectError(
                        f"Failed to open port (tried {self.port}-{port})"
                    ) from e
                logger.debug(f"Port {port} unavailable, trying {port + 1}")
                port += 1
                continue
            break

        sock.listen(1)
        sock.setblocking(False)
        self._listener = sock
        self.port = port

        logger.info(f"Listening for transfer on {self.host}:{port}")
        self.emit(ChannelEvent.LISTENING, port)
        return port

    async def _connect(self):
        loop = asyncio.get_running_loop()
        self.state = ChannelState.CONNECTING
        logger.info(f"Connecting to {self.host}:{self.port}")

        infos = await loop.getaddrinfo(self.host, self.port, type=socket.SOCK_STREAM)
        family, sock_type, proto, _, address = infos[0]

        sock = socket.socket(family, sock_type, proto)
        sock.setblocking(False)
        self._socket = sock

        await loop.sock_connect(sock, address)
        self.remote_address = address[:2]
        self._set_keepalive(sock)

        if self.framed and self.identity is not None:
            # Plaintext greeting, sent before the TLS upgrade
            await loop.sock_sendall(sock, self.identity.to_bytes())

        self.state = ChannelState.HANDSHAKING
        logger.debug(f"Starting TLS handshake with {self.host}:{self.port}")
        await self._wrap(sock, client_context(self.certificate), server_side=False)

    async def _accept(self):
        loop = asyncio.get_running_loop()
        self.state = ChannelState.CONNECTING

        sock, address = await loop.sock_accept(self._listener)
        sock.setblocking(False)
        self._socket = sock
        self.remote_address = address[:2]
        logger.info(f"Accepted transfer connection from {address[0]}:{address[1]}")
        self._set_keepalive(sock)

        self.state = ChannelState.HANDSHAKING
        ctx = server_context(self.certificate, self.trust.certificate)
        try:
            await self._wrap(sock, ctx, server_side=True)
        except ssl.SSLCertVerificationError as e:
            # With a pin loaded, OpenSSL itself rejects any other client certificate
            if self.trust.paired:
                raise TrustError(
                    f"Certificate from {address[0]} does not match "
                    f"the pinned certificate for {self.trust.device_id}"
                ) from e
            raise

    async def _wrap(self, sock: socket.socket, ctx: ssl.SSLContext, server_side: bool):
        """Upgrade sock to TLS and build the stream pair. Awaits the handshake."""
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=self.max_packet_size)
        protocol = asyncio.StreamReaderProtocol(reader)

        if server_side:
            transport, _ = await loop.connect_accepted_socket(
                lambda: protocol, sock, ssl=ctx
            )
        else:
            transport, _ = await loop.create_connection(
                lambda: protocol, sock=sock, ssl=ctx, server_hostname=''
            )

        self._reader = reader
        self._writer = asyncio.StreamWriter(transport, protocol, reader, loop)

    def _set_keepalive(self, sock: socket.socket):
        """Detect dead peers faster than the OS defaults."""
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        if hasattr(socket, 'TCP_KEEPIDLE'):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, self.keepalive.idle)
        elif hasattr(socket, 'TCP_KEEPALIVE'):  # macOS
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPALIVE, self.keepalive.idle)
        if hasattr(socket, 'TCP_KEEPINTVL'):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, self.keepalive.interval)
        if hasattr(socket, 'TCP_KEEPCNT'):
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPCNT, self.keepalive.count)

    def _verify_peer(self):
        ssl_object = self._writer.get_extra_info('ssl_object')
        if ssl_object is not None:
            self.peer_certificate = ssl_object.getpeercert(binary_form=True)

        if not self.trust.accept_certificate(self.peer_certificate):
            raise TrustError(
                f"Certificate from {self.host}:{self.port} does not match "
                f"the pinned certificate for {self.trust.device_id}"
            )

    def _established(self):
        if self.framed:
            self._monitor = asyncio.create_task(self._receive_loop())
        else:
            self.source, self.sink = self.endpoint.attach(self._reader, self._writer)

        self.state = ChannelState.CONNECTED
        logger.info(f"Connected to {self.trust.device_id} at {self.host}:{self.port}")
        self.emit(ChannelEvent.CONNECTED)

    # === Packets ===

    async def _receive_loop(self):
        """Read one line at a time until the peer goes away."""
        while self.state == ChannelState.CONNECTED:
            try:
                line = await self._reader.readline()
            except ValueError as e:
                # Line longer than max_packet_size; the buffer was discarded
                logger.warning(f"Dropping oversized packet from {self.host}: {e}")
                continue
            except OSError as e:
                logger.error(f"Failed to receive packet from {self.host}: {e}")
                break

            if not line.rstrip(b'\r\n'):
                logger.debug(f"Peer {self.host} closed the connection")
                break

            try:
                packet = Packet.parse(line)
            except PacketParseError as e:
                logger.warning(f"Dropping malformed packet from {self.host}: {e}")
                continue

            logger.debug(f"Received {packet.type} from {self.host}")
            self.emit(ChannelEvent.RECEIVED, packet)

        await self.close()

    async def send(self, packet: Packet) -> bool:
        """
        Serialize and write a packet.

        Returns:
            True if written. Failures are logged and leave the channel open.
        """
        if not self.framed or self.state != ChannelState.CONNECTED:
            logger.warning(f"Cannot send {packet.type}: channel not connected")
            return False

        logger.debug(f"Sending {packet.type} to {self.host}")
        try:
            self._writer.write(packet.to_bytes())
            await self._writer.drain()
        except OSError as e:
            logger.error(f"Error sending packet to {self.host}: {e}")
            return False

        return True

    # === Teardown ===

    async def close(self):
        """
        Release every resource and emit DISCONNECTED.

        Safe to call any number of times; each resource is released in its
        own error guard so one failure does not leak the rest.
        """
        if self._closed:
            return
        self._closed = True
        self.state = ChannelState.CLOSED

        pending = self._pending
        if pending is not None and not pending.done():
            pending.cancel()
            await asyncio.wait({pending})

        if self._monitor is not None and self._monitor is not asyncio.current_task():
            self._monitor.cancel()
        self._monitor = None

        try:
            if self._reader is not None:
                self._reader.feed_eof()
        except Exception as e:
            logger.error(f"Error closing input stream: {e}")

        try:
            if self._writer is not None:
                self._writer.close()
                await asyncio.wait_for(self._writer.wait_closed(), CLOSE_TIMEOUT)
        except Exception as e:
            logger.error(f"Error closing output stream: {e}")

        try:
            if self._writer is not None:
                self._writer.transport.abort()
            if self._socket is not None:
                self._socket.close()
        except Exception as e:
            logger.error(f"Error closing connection: {e}")

        try:
            if self._listener is not None:
                self._listener.close()
        except Exception as e:
            logger.error(f"Error closing listener: {e}")

        self._reader = None
        self._writer = None
        self._socket = None
        self._listener = None
        self.source = None
        self.sink = None

        logger.info(f"Disconnected from {self.host}:{self.port}")
        self.emit(ChannelEvent.DISCONNECTED)
