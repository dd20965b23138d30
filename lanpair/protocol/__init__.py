"""
Protocol Module - Packets, Trust and Channels

Handles the control channel: packet framing, the TLS upgrade and the
certificate-pinning trust decision.
"""

from .packet import (
    Packet, PacketParseError, TYPE_IDENTITY, TYPE_PAIR,
    identity_packet, pair_packet,
)
from .certificate import LocalCertificate, certificate_fingerprint
from .trust import PeerTrust
from .channel import (
    LanChannel, ChannelRole, ChannelState, KeepaliveConfig,
    ConnectError, TrustError, DEFAULT_PORT, UPLOAD_PORT_MIN, UPLOAD_PORT_MAX,
)

__all__ = [
    'Packet',
    'PacketParseError',
    'TYPE_IDENTITY',
    'TYPE_PAIR',
    'identity_packet',
    'pair_packet',
    'LocalCertificate',
    'certificate_fingerprint',
    'PeerTrust',
    'LanChannel',
    'ChannelRole',
    'ChannelState',
    'KeepaliveConfig',
    'ConnectError',
    'TrustError',
    'DEFAULT_PORT',
    'UPLOAD_PORT_MIN',
    'UPLOAD_PORT_MAX',
]
