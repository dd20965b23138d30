"""
Local Certificate

Each device authenticates with a long-lived self-signed certificate.
There is no CA: peers pin each other's certificate at pairing time.
"""

import datetime
import hashlib
import logging
from pathlib import Path
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

logger = logging.getLogger(__name__)

CERT_FILENAME = "certificate.pem"
KEY_FILENAME = "private.pem"

CERT_VALIDITY_DAYS = 3650  # 10 years


def certificate_fingerprint(der: bytes) -> str:
    """SHA-256 fingerprint of a DER certificate, colon separated."""
    digest = hashlib.sha256(der).hexdigest()
    return ':'.join(digest[i:i + 2] for i in range(0, len(digest), 2))


class LocalCertificate:
    """This device's certificate and private key on disk."""

    def __init__(self, cert_path: Path, key_path: Path, device_id: Optional[str] = None):
        self.cert_path = Path(cert_path)
        self.key_path = Path(key_path)

        with open(self.cert_path, 'rb') as f:
            self._cert = x509.load_pem_x509_certificate(f.read())

        if device_id is None:
            names = self._cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
            device_id = names[0].value if names else ''
        self.device_id = device_id

    @property
    def der(self) -> bytes:
        return self._cert.public_bytes(serialization.Encoding.DER)

    @property
    def pem(self) -> bytes:
        return self._cert.public_bytes(serialization.Encoding.PEM)

    @property
    def fingerprint(self) -> str:
        return certificate_fingerprint(self.der)

    @classmethod
    def generate(cls, directory: Path, device_id: str) -> 'LocalCertificate':
        """Create a new RSA key and self-signed certificate in directory."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        subject = x509.Name([
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "KDE"),
            x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, "KDE Connect"),
            x509.NameAttribute(NameOID.COMMON_NAME, device_id),
        ])
        now = datetime.datetime.now(datetime.timezone.utc)
        cert = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(days=1))
            .not_valid_after(now + datetime.timedelta(days=CERT_VALIDITY_DAYS))
            .sign(key, hashes.SHA256())
        )

        key_path = directory / KEY_FILENAME
        cert_path = directory / CERT_FILENAME

        with open(key_path, 'wb') as f:
            f.write(key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.TraditionalOpenSSL,
                encryption_algorithm=serialization.NoEncryption(),
            ))
        key_path.chmod(0o600)

        with open(cert_path, 'wb') as f:
            f.write(cert.public_bytes(serialization.Encoding.PEM))

        logger.info(f"Generated certificate for {device_id} in {directory}")
        return cls(cert_path, key_path, device_id)

    @classmethod
    def load_or_create(cls, directory: Path, device_id: str) -> 'LocalCertificate':
        """Load the certificate from directory, generating it on first run."""
        directory = Path(directory)
        cert_path = directory / CERT_FILENAME
        key_path = directory / KEY_FILENAME

        if cert_path.exists() and key_path.exists():
            return cls(cert_path, key_path)

        return cls.generate(directory, device_id)
