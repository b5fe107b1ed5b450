"""SQLite persistence for invoice verifications and product role mappings."""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass
from typing import Optional

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS verifications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        invoice_id TEXT NOT NULL UNIQUE,
        discord_id TEXT NOT NULL,
        product_id TEXT,
        role_id TEXT,
        status TEXT NOT NULL,
        used_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS role_mappings (
        product_id TEXT PRIMARY KEY,
        role_id TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_verifications_discord_id ON verifications(discord_id)",
)

_RECORD_COLUMNS = "invoice_id, discord_id, product_id, role_id, status, created_at, used_at"


class InsertResult(enum.Enum):
    INSERTED = "inserted"
    CONFLICT = "conflict"


@dataclass(frozen=True)
class VerificationRecord:
    invoice_id: str
    account_id: str
    product_id: Optional[str]
    role_id: Optional[str]
    status: str
    created_at: Optional[str] = None
    used_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "VerificationRecord":
        return cls(
            invoice_id=row["invoice_id"],
            account_id=row["discord_id"],
            product_id=row["product_id"],
            role_id=row["role_id"],
            status=row["status"],
            created_at=row["created_at"],
            used_at=row["used_at"],
        )


class VerificationStore:
    """Verification records and role mappings in one SQLite file.

    The connection runs in autocommit mode, so every INSERT is its own
    transaction and the UNIQUE constraint on ``invoice_id`` decides which of
    two concurrent inserts wins.
    """

    def __init__(self, path: str):
        self.path = path
        self.conn: Optional[aiosqlite.Connection] = None

    async def open(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        self.conn = await aiosqlite.connect(self.path, isolation_level=None)
        self.conn.row_factory = aiosqlite.Row
        await self.conn.execute("PRAGMA journal_mode=WAL")
        await self.conn.execute("PRAGMA busy_timeout = 5000")
        for statement in SCHEMA:
            await self.conn.execute(statement)
        logger.info("SQLite DB opened at %s", self.path)

    async def close(self) -> None:
        if self.conn is not None:
            await self.conn.close()
            self.conn = None
            logger.info("SQLite DB closed")

    async def __aenter__(self) -> "VerificationStore":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _db(self) -> aiosqlite.Connection:
        if self.conn is None:
            raise aiosqlite.OperationalError("verification store is not open")
        return self.conn

    # -- Verifications --

    async def find_verification(self, invoice_id: str) -> Optional[VerificationRecord]:
        async with self._db().execute(
            f"SELECT {_RECORD_COLUMNS} FROM verifications WHERE invoice_id = ?",
            (invoice_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return VerificationRecord.from_row(row) if row else None

    async def find_by_account(self, account_id: str) -> list[VerificationRecord]:
        async with self._db().execute(
            f"SELECT {_RECORD_COLUMNS} FROM verifications WHERE discord_id = ? ORDER BY id",
            (account_id,),
        ) as cursor:
            rows = await cursor.fetchall()
        return [VerificationRecord.from_row(row) for row in rows]

    async def insert_verification(
        self,
        invoice_id: str,
        account_id: str,
        product_id: Optional[str],
        role_id: Optional[str],
        status: str,
    ) -> InsertResult:
        """Insert a record, reporting a duplicate invoice id as CONFLICT."""
        try:
            await self._db().execute(
                "INSERT INTO verifications (invoice_id, discord_id, product_id, role_id, status) "
                "VALUES (?, ?, ?, ?, ?)",
                (invoice_id, account_id, product_id, role_id, status),
            )
        except aiosqlite.IntegrityError:
            logger.info("Invoice %s already recorded, insert rejected", invoice_id)
            return InsertResult.CONFLICT
        return InsertResult.INSERTED

    # -- Role mappings --

    async def get_role_mapping(self, product_id: str) -> Optional[str]:
        async with self._db().execute(
            "SELECT role_id FROM role_mappings WHERE product_id = ?", (product_id,)
        ) as cursor:
            row = await cursor.fetchone()
        return row["role_id"] if row and row["role_id"] else None

    async def set_role_mapping(self, product_id: str, role_id: str) -> None:
        await self._db().execute(
            "INSERT INTO role_mappings (product_id, role_id) VALUES (?, ?) "
            "ON CONFLICT(product_id) DO UPDATE SET role_id = excluded.role_id",
            (product_id, role_id),
        )

    async def delete_role_mapping(self, product_id: str) -> bool:
        async with self._db().execute(
            "DELETE FROM role_mappings WHERE product_id = ?", (product_id,)
        ) as cursor:
            return cursor.rowcount > 0

    async def list_role_mappings(self) -> dict[str, str]:
        async with self._db().execute(
            "SELECT product_id, role_id FROM role_mappings ORDER BY product_id"
        ) as cursor:
            rows = await cursor.fetchall()
        return {row["product_id"]: row["role_id"] for row in rows}
