"""Tests for the packet codec."""

import json

import pytest

from lanpair.protocol.packet import (
    Packet, PacketParseError, TYPE_IDENTITY, TYPE_PAIR, PROTOCOL_VERSION,
    identity_packet, pair_packet,
)


class TestParse:
    """Decoding one line into a packet."""

    def test_parse_valid_line(self):
        packet = Packet.parse('{"id": 42, "type": "kdeconnect.ping", "body": {"message": "hi"}}\n')
        assert packet.id == 42
        assert packet.type == "kdeconnect.ping"
        assert packet.body == {"message": "hi"}

    def test_parse_accepts_bytes(self):
        packet = Packet.parse(b'{"id": 1, "type": "kdeconnect.ping", "body": {}}\n')
        assert packet.type == "kdeconnect.ping"

    @pytest.mark.parametrize("missing", ["id", "type", "body"])
    def test_missing_field_fails(self, missing):
        data = {"id": 1, "type": "kdeconnect.ping", "body": {}}
        del data[missing]
        with pytest.raises(PacketParseError):
            Packet.parse(json.dumps(data))

    @pytest.mark.parametrize("line", ["not json", "{\"id\": 1,", "", "[1, 2, 3]", "42"])
    def test_non_packet_input_fails(self, line):
        with pytest.raises(PacketParseError):
            Packet.parse(line)

    def test_parse_error_is_value_error(self):
        with pytest.raises(ValueError):
            Packet.parse("garbage")

    def test_invalid_utf8_fails(self):
        with pytest.raises(PacketParseError):
            Packet.parse(b'\xff\xfe{}')

    def test_parse_does_not_mutate_input(self):
        raw = '{"id": 7, "type": "kdeconnect.ping", "body": {"a": [1, 2]}}'
        before = str(raw)
        Packet.parse(raw)
        assert raw == before


class TestSerialize:
    """Encoding a packet as one frame."""

    def test_single_trailing_newline(self):
        data = Packet("kdeconnect.ping", {"text": "line one\nline two"}).serialize()
        assert data.endswith("\n")
        assert data.count("\n") == 1

    def test_compact_json(self):
        data = Packet("kdeconnect.ping", {"a": 1}).serialize()
        assert ", " not in data
        assert ": " not in data

    def test_id_is_restamped(self):
        packet = Packet("kdeconnect.ping", {}, id=1)
        data = packet.serialize()
        assert packet.id > 1
        assert json.loads(data)["id"] == packet.id

    def test_round_trip_preserves_type_and_body(self):
        body = {"nested": {"list": [1, "two", None, True]}, "unicode": "héllo ✓"}
        source = {"id": 0, "type": "kdeconnect.share.request", "body": body}
        parsed = Packet.parse(Packet.clone(source).serialize())
        assert parsed.type == "kdeconnect.share.request"
        assert parsed.body == body

    def test_to_bytes_is_utf8(self):
        packet = Packet("kdeconnect.ping", {"message": "ü"})
        assert packet.to_bytes().decode('utf-8').endswith("\n")


class TestClone:
    """Copying packets."""

    def test_clone_deep_copies_body(self):
        source = Packet("kdeconnect.ping", {"items": [1, 2], "meta": {"k": "v"}})
        copy = Packet.clone(source)

        copy.body["items"].append(3)
        copy.body["meta"]["k"] = "changed"

        assert source.body == {"items": [1, 2], "meta": {"k": "v"}}

    def test_clone_assigns_fresh_id(self):
        source = Packet("kdeconnect.ping", {}, id=5)
        assert Packet.clone(source).id != 5

    def test_clone_from_dict(self):
        copy = Packet.clone({"id": 1, "type": TYPE_PAIR, "body": {"pair": True}})
        assert copy.type == TYPE_PAIR
        assert copy.body == {"pair": True}

    def test_clone_rejects_incomplete_source(self):
        with pytest.raises(PacketParseError):
            Packet.clone({"type": TYPE_PAIR, "body": {}})


class TestConstruction:

    def test_empty_type_rejected(self):
        with pytest.raises(PacketParseError):
            Packet("")

    def test_body_defaults_to_empty_dict(self):
        assert Packet("kdeconnect.ping").body == {}


class TestBootstrapPackets:

    def test_identity_packet(self):
        packet = identity_packet("abc", "laptop", "desktop",
                                 tcp_host="192.168.1.10", tcp_port=1716,
                                 incoming_capabilities=["kdeconnect.ping"])
        assert packet.type == TYPE_IDENTITY
        assert packet.body["deviceId"] == "abc"
        assert packet.body["deviceName"] == "laptop"
        assert packet.body["tcpHost"] == "192.168.1.10"
        assert packet.body["tcpPort"] == 1716
        assert packet.body["protocolVersion"] == PROTOCOL_VERSION
        assert packet.body["incomingCapabilities"] == ["kdeconnect.ping"]
        assert packet.body["outgoingCapabilities"] == []

    def test_pair_packet(self):
        assert pair_packet().body == {"pair": True}
        assert pair_packet(False).body == {"pair": False}
        assert pair_packet().type == TYPE_PAIR
