"""
Packet Codec

Design Decision: Wire Format
============================

Options Considered:
1. Length-prefixed binary header + JSON
   - Robust against embedded delimiters
   - Not what KDE Connect peers speak

2. Newline-delimited JSON (one object per line)
   - Human readable, trivial to debug with netcat
   - JSON string escaping guarantees no raw newline inside a packet
   - Interoperable with existing KDE Connect implementations

Decision: Newline-delimited JSON
- The newline is the only frame delimiter
- No length prefix, no binary payloads on the control channel
- File contents travel over a separate raw connection

Packet Format:
```
{"id": 1700000000000, "type": "kdeconnect.identity", "body": {...}}\\n
```
"""

import copy
import json
import logging
import time
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)

# Bootstrap packet types
TYPE_IDENTITY = "kdeconnect.identity"
TYPE_PAIR = "kdeconnect.pair"

PROTOCOL_VERSION = 7

REQUIRED_FIELDS = ('id', 'type', 'body')


class PacketParseError(ValueError):
    """Raised when a line cannot be decoded into a packet."""


def _timestamp() -> int:
    """Milliseconds since the epoch, used as packet id."""
    return int(time.time() * 1000)


class Packet:
    """
    A single control-channel message.

    The id is wall-clock based and is reassigned every time the packet
    is serialized, so it is never preserved across a send.
    """

    def __init__(self, type: str, body: Optional[Dict[str, Any]] = None,
                 id: Optional[int] = None):
        if not isinstance(type, str) or not type:
            raise PacketParseError("Packet type must be a non-empty string")
        self.id = id if id is not None else _timestamp()
        self.type = type
        self.body: Dict[str, Any] = body if body is not None else {}

    def __repr__(self) -> str:
        return f"Packet(id={self.id}, type={self.type!r}, body={self.body!r})"

    def __eq__(self, other):
        if isinstance(other, Packet):
            return (self.id, self.type, self.body) == (other.id, other.type, other.body)
        return False

    @staticmethod
    def _check(obj: Any) -> None:
        if not isinstance(obj, dict):
            raise PacketParseError(f"Packet must be a JSON object, got {type(obj).__name__}")
        for name in REQUIRED_FIELDS:
            if name not in obj:
                raise PacketParseError(f"Malformed packet: missing '{name}' field")
        if not isinstance(obj['body'], dict):
            raise PacketParseError("Malformed packet: 'body' must be an object")

    @classmethod
    def parse(cls, raw: Union[str, bytes]) -> 'Packet':
        """
        Decode one line into a packet.

        Raises:
            PacketParseError: if the line is not JSON or lacks id/type/body
        """
        if isinstance(raw, bytes):
            try:
                raw = raw.decode('utf-8')
            except UnicodeDecodeError as e:
                raise PacketParseError(f"Packet is not valid UTF-8: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PacketParseError(f"Packet is not valid JSON: {e}") from e

        cls._check(data)
        return cls(type=data['type'], body=data['body'], id=data['id'])

    @classmethod
    def clone(cls, packet: Union['Packet', Dict[str, Any]]) -> 'Packet':
        """Copy a packet (or packet-shaped dict) with a fresh id and a deep-copied body."""
        if isinstance(packet, Packet):
            packet = packet.to_dict()
        cls._check(packet)
        return cls(type=packet['type'], body=copy.deepcopy(packet['body']))

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'type': self.type, 'body': self.body}

    def serialize(self) -> str:
        """Stamp a new id and return the newline-terminated JSON frame."""
        self.id = _timestamp()
        return json.dumps(self.to_dict(), separators=(',', ':')) + "\n"

    def to_bytes(self) -> bytes:
        return self.serialize().encode('utf-8')


def identity_packet(device_id: str, device_name: str, device_type: str = 'desktop',
                    tcp_host: str = '0.0.0.0', tcp_port: int = 1716,
                    incoming_capabilities: Optional[List[str]] = None,
                    outgoing_capabilities: Optional[List[str]] = None) -> Packet:
    """Build the identity packet sent in plaintext before the TLS upgrade."""
    return Packet(TYPE_IDENTITY, {
        'deviceId': device_id,
        'deviceName': device_name,
        'deviceType': device_type,
        'protocolVersion': PROTOCOL_VERSION,
        'tcpHost': tcp_host,
        'tcpPort': tcp_port,
        'incomingCapabilities': list(incoming_capabilities or []),
        'outgoingCapabilities': list(outgoing_capabilities or []),
    })


def pair_packet(pair: bool = True) -> Packet:
    """Build a pairing request (or an unpair notice when pair is False)."""
    return Packet(TYPE_PAIR, {'pair': pair})
