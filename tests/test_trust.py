"""Tests for certificates and the pinning decision."""

import ssl

from lanpair.protocol.certificate import LocalCertificate, certificate_fingerprint
from lanpair.protocol.tls import client_context, server_context
from lanpair.protocol.trust import PeerTrust


class TestLocalCertificate:

    def test_device_id_from_common_name(self, cert_a):
        reloaded = LocalCertificate(cert_a.cert_path, cert_a.key_path)
        assert reloaded.device_id == "device-a"
        assert reloaded.der == cert_a.der

    def test_load_or_create_reuses_existing(self, tmp_path):
        first = LocalCertificate.load_or_create(tmp_path, "dev-1")
        second = LocalCertificate.load_or_create(tmp_path, "ignored")
        assert first.der == second.der
        assert second.device_id == "dev-1"

    def test_fingerprint_format(self, cert_a):
        fingerprint = cert_a.fingerprint
        assert fingerprint == certificate_fingerprint(cert_a.der)
        assert len(fingerprint.split(':')) == 32

    def test_private_key_is_owner_only(self, cert_a):
        assert cert_a.key_path.stat().st_mode & 0o077 == 0


class TestPeerTrust:
    """The pinning decision applied after each handshake."""

    def test_paired_peer_with_pinned_certificate_accepted(self, cert_a):
        trust = PeerTrust("device-a", certificate=cert_a.der)
        assert trust.paired
        assert trust.accept_certificate(cert_a.der)

    def test_paired_peer_with_other_certificate_rejected(self, cert_a, cert_b):
        trust = PeerTrust("device-a", certificate=cert_a.der)
        assert not trust.accept_certificate(cert_b.der)

    def test_paired_peer_without_certificate_rejected(self, cert_a):
        trust = PeerTrust("device-a", certificate=cert_a.der)
        assert not trust.accept_certificate(None)

    def test_unpaired_peer_accepts_anything(self, cert_a, cert_b):
        trust = PeerTrust("device-x")
        assert trust.accept_certificate(cert_a.der)
        assert trust.candidate == cert_a.der
        assert trust.accept_certificate(cert_b.der)
        assert trust.candidate == cert_b.der

    def test_pin_promotes_candidate(self, cert_b):
        trust = PeerTrust("device-b")
        trust.accept_certificate(cert_b.der)
        assert trust.pin()
        assert trust.paired
        assert trust.certificate == cert_b.der

    def test_pin_without_candidate(self):
        trust = PeerTrust("device-b")
        assert not trust.pin()
        assert not trust.paired

    def test_unpair(self, cert_b):
        trust = PeerTrust("device-b", certificate=cert_b.der)
        trust.unpair()
        assert not trust.paired


class TestTlsContexts:

    def test_client_context_skips_validation(self, cert_a):
        ctx = client_context(cert_a)
        assert ctx.check_hostname is False
        assert ctx.verify_mode == ssl.CERT_NONE

    def test_server_context_without_pin_requests_nothing(self, cert_a):
        assert server_context(cert_a).verify_mode == ssl.CERT_NONE

    def test_server_context_with_pin_requires_client_cert(self, cert_a, cert_b):
        ctx = server_context(cert_a, pinned=cert_b.der)
        assert ctx.verify_mode == ssl.CERT_REQUIRED
