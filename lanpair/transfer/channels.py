"""
Transfer Channels - Download / Upload

A transfer channel is a LanChannel with no packet framing: once the TLS
handshake finishes, one side of the raw connection is paired with a local
stream and handed to a Transfer.

| Role     | Socket            | TLS side | Network stream used |
|----------|-------------------|----------|---------------------|
| Download | connect-out       | client   | input  (source)     |
| Upload   | listen-and-accept | server   | output (sink)       |
"""

import logging
from typing import Optional, Tuple

from ..protocol.certificate import LocalCertificate
from ..protocol.channel import (
    LanChannel, ChannelRole, KeepaliveConfig, UPLOAD_PORT_MIN, UPLOAD_PORT_MAX,
)
from ..protocol.trust import PeerTrust
from .pump import Transfer, CHUNK_SIZE
from .streams import StreamSource, StreamSink

logger = logging.getLogger(__name__)


class StreamEndpoint:
    """Decides which side of the TLS connection a transfer uses."""

    def attach(self, reader, writer) -> Tuple[object, object]:
        """Return the (source, sink) pair for a freshly connected channel."""
        raise NotImplementedError


class InputEndpoint(StreamEndpoint):
    """Network input feeds a local sink (receiving a file)."""

    def __init__(self, sink):
        self.sink = sink

    def attach(self, reader, writer):
        return StreamSource(reader, writer), self.sink


class OutputEndpoint(StreamEndpoint):
    """A local source feeds the network output (sending a file)."""

    def __init__(self, source):
        self.source = source

    def attach(self, reader, writer):
        return self.source, StreamSink(writer)


def download_channel(host: str, port: int, certificate: LocalCertificate,
                     trust: PeerTrust, sink,
                     keepalive: Optional[KeepaliveConfig] = None) -> LanChannel:
    """Connect to a peer's upload port and receive into sink."""
    return LanChannel(
        host, port, certificate, trust,
        role=ChannelRole.CONNECT,
        endpoint=InputEndpoint(sink),
        keepalive=keepalive,
    )


def upload_channel(certificate: LocalCertificate, trust: PeerTrust, source,
                   host: str = '0.0.0.0', port: int = UPLOAD_PORT_MIN,
                   port_ceiling: int = UPLOAD_PORT_MAX,
                   keepalive: Optional[KeepaliveConfig] = None) -> LanChannel:
    """Listen for the peer and send source to it once connected."""
    return LanChannel(
        host, port, certificate, trust,
        role=ChannelRole.LISTEN,
        endpoint=OutputEndpoint(source),
        port_ceiling=port_ceiling,
        keepalive=keepalive,
    )


def create_transfer(channel: LanChannel, size: int,
                    chunk_size: int = CHUNK_SIZE) -> Transfer:
    """Build the Transfer for a connected transfer channel."""
    if channel.source is None or channel.sink is None:
        raise RuntimeError(f"{channel!r} has no stream pair; is it connected?")
    return Transfer(channel.source, channel.sink, size, chunk_size=chunk_size)
