"""
Storage Module - Persistent Trust Storage

Uses SQLite for storing pinned peer certificates.
"""

from .database import TrustStore, init_trust_store

__all__ = ['TrustStore', 'init_trust_store']
