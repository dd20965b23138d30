"""
Peer Trust

Design Decision: Trust Model
============================

Options Considered:
1. Standard PKI (CA chain + hostname)
   - LAN devices have no stable hostnames and no CA
2. Trust-on-first-use with certificate pinning
   - Unpaired peers are accepted, their certificate is remembered
   - Paired peers must present the exact certificate pinned at pairing

Decision: Pinning
- Chain and hostname validation are disabled entirely
- The pairing-approval step (outside this package) promotes the
  candidate certificate to the pinned one
"""

import logging
from typing import Optional

from .certificate import certificate_fingerprint

logger = logging.getLogger(__name__)


class PeerTrust:
    """
    Pinned-certificate lookup/update for a single peer device.

    `certificate` is the pinned DER certificate (None while unpaired).
    `candidate` holds the certificate seen during the last handshake.
    """

    def __init__(self, device_id: str, certificate: Optional[bytes] = None,
                 name: str = ''):
        self.device_id = device_id
        self.name = name
        self.certificate = certificate
        self.candidate: Optional[bytes] = None

    def __repr__(self) -> str:
        return f"PeerTrust(device_id={self.device_id!r}, paired={self.paired})"

    @property
    def paired(self) -> bool:
        return self.certificate is not None

    def accept_certificate(self, peer_cert: Optional[bytes]) -> bool:
        """
        Decide whether a handshake with this peer may proceed.

        Paired peers must match the pinned certificate byte for byte.
        Unpaired peers are always accepted.
        """
        self.candidate = peer_cert

        if self.paired:
            if peer_cert != self.certificate:
                logger.warning(f"Certificate mismatch for paired device {self.device_id}")
                return False
            return True

        if peer_cert is not None:
            logger.debug(f"Unpaired device {self.device_id} offered "
                         f"{certificate_fingerprint(peer_cert)}")
        return True

    def pin(self) -> bool:
        """Promote the candidate certificate to pinned. Returns False if none was seen."""
        if self.candidate is None:
            return False
        self.certificate = self.candidate
        logger.info(f"Pinned certificate for {self.device_id}")
        return True

    def unpair(self):
        self.certificate = None
