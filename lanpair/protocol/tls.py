"""
TLS Contexts

Python's ssl module has no per-certificate verification callback, so CA
and hostname checks are switched off here and the pinning decision is
applied by the channel on the peer certificate once the handshake ends.
"""

import ssl
from typing import Optional

from .certificate import LocalCertificate


def _der_to_pem(der: bytes) -> str:
    return ssl.DER_cert_to_PEM_cert(der)


def client_context(certificate: LocalCertificate) -> ssl.SSLContext:
    """Client side: present our certificate, accept any server certificate."""
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    ctx.load_cert_chain(certificate.cert_path, certificate.key_path)
    return ctx


def server_context(certificate: LocalCertificate,
                   pinned: Optional[bytes] = None) -> ssl.SSLContext:
    """
    Server side context.

    With a pinned certificate the client must present exactly that
    certificate (it is the only trust anchor loaded). Without one no
    client certificate is requested.
    """
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    ctx.load_cert_chain(certificate.cert_path, certificate.key_path)
    if pinned is not None:
        ctx.verify_mode = ssl.CERT_REQUIRED
        ctx.load_verify_locations(cadata=_der_to_pem(pinned))
    else:
        ctx.verify_mode = ssl.CERT_NONE
    return ctx
