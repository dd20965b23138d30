"""
lanpair - LAN device pairing transport

Authenticated, encrypted channels between paired devices on a LAN:
newline-delimited JSON packets on a TLS control channel, and raw TLS
data channels for file transfers.
"""

__version__ = "0.1.0"
