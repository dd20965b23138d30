"""
SQLite Trust Store

Design Decision: Why SQLite?
============================

Options Considered:
1. One PEM file per paired device
   - Easy to inspect, awkward to list and to update atomically
2. JSON file
   - Whole-file rewrites, no concurrent access story
3. SQLite
   - Single file, ACID, simple lookups by device id

Decision: SQLite with aiosqlite
- Zero configuration
- Async access fits the asyncio channels
- Certificates stored as DER blobs, compared byte for byte

Tables:
- devices: one row per known device; `certificate` is NULL until paired
"""

import logging
from pathlib import Path
from typing import Optional, List, Dict

import aiosqlite

from ..protocol.trust import PeerTrust

logger = logging.getLogger(__name__)

# Schema version for migrations
SCHEMA_VERSION = 1


class TrustStore:
    """
    Persistent pinned-certificate store.

    Hands out PeerTrust objects for channels and persists the
    certificate once the pairing step has approved it.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._connection: Optional[aiosqlite.Connection] = None

    async def connect(self):
        """Open database connection."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row

        await self._init_schema()

        logger.info(f"Trust store opened: {self.db_path}")

    async def close(self):
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def _init_schema(self):
        await self._connection.executescript("""
            CREATE TABLE IF NOT EXISTS schema_info (
                version INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS devices (
                device_id TEXT PRIMARY KEY,
                name TEXT NOT NULL DEFAULT '',
                certificate BLOB,
                paired_at TIMESTAMP,
                last_seen TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_devices_last_seen ON devices(last_seen);
        """)

        async with self._connection.execute("SELECT version FROM schema_info") as cursor:
            row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_info (version) VALUES (?)", (SCHEMA_VERSION,)
            )

        await self._connection.commit()

    # === Trust ===

    async def get_trust(self, device_id: str) -> PeerTrust:
        """Trust record for a device; unpaired if it was never pinned."""
        async with self._connection.execute(
            "SELECT name, certificate FROM devices WHERE device_id = ?", (device_id,)
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return PeerTrust(device_id)

        certificate = bytes(row['certificate']) if row['certificate'] is not None else None
        return PeerTrust(device_id, certificate=certificate, name=row['name'])

    async def save(self, trust: PeerTrust):
        """Persist a trust record, pinned or not."""
        await self._connection.execute(
            """INSERT INTO devices (device_id, name, certificate, paired_at, last_seen)
               VALUES (?, ?, ?, CASE WHEN ? IS NULL THEN NULL ELSE CURRENT_TIMESTAMP END,
                       CURRENT_TIMESTAMP)
               ON CONFLICT(device_id) DO UPDATE SET
                   name = excluded.name,
                   certificate = excluded.certificate,
                   paired_at = excluded.paired_at,
                   last_seen = CURRENT_TIMESTAMP""",
            (trust.device_id, trust.name, trust.certificate, trust.certificate)
        )
        await self._connection.commit()

    async def pin(self, trust: PeerTrust) -> bool:
        """
        Promote the candidate certificate seen during the handshake.

        Returns:
            False when no handshake has produced a candidate yet
        """
        if not trust.pin():
            logger.warning(f"No candidate certificate to pin for {trust.device_id}")
            return False
        await self.save(trust)
        return True

    async def unpair(self, device_id: str) -> bool:
        """Forget the pinned certificate. Returns False for unknown devices."""
        cursor = await self._connection.execute(
            """UPDATE devices SET certificate = NULL, paired_at = NULL
               WHERE device_id = ?""",
            (device_id,)
        )
        await self._connection.commit()
        return cursor.rowcount > 0

    async def touch(self, device_id: str):
        """Record that the device was just seen."""
        await self._connection.execute(
            "UPDATE devices SET last_seen = CURRENT_TIMESTAMP WHERE device_id = ?",
            (device_id,)
        )
        await self._connection.commit()

    async def list_devices(self) -> List[Dict]:
        """All known devices, most recently seen first."""
        async with self._connection.execute(
            """SELECT device_id, name, certificate, paired_at, last_seen
               FROM devices ORDER BY last_seen DESC"""
        ) as cursor:
            rows = await cursor.fetchall()

        devices = []
        for row in rows:
            device = dict(row)
            device['paired'] = device['certificate'] is not None
            devices.append(device)
        return devices


async def init_trust_store(data_dir: Path) -> TrustStore:
    """Initialize and return a trust store instance."""
    store = TrustStore(Path(data_dir) / "trust.db")
    await store.connect()
    return store
