"""
Persistent storage for active mutes.

Timestamps are stored as INTEGER unix seconds. ``taken_roles`` is stored as a
comma-separated list of role ids in the order they were captured.

``find_and_delete`` is the single arbitration point between the expiry timer,
a manual unmute and a second timer fire: it runs one ``DELETE ... RETURNING``
statement inside the serialised write transaction, so at most one caller ever
receives the record.
"""

from __future__ import annotations

import sqlite3
from typing import List, Optional

import aiosqlite

from mutekeeper.database.db_connection import ConnectionManager, db_connection
from mutekeeper.datatypes.discord_datatypes import GuildID, RoleID, UserID
from mutekeeper.datatypes.sanction_datatypes import SanctionRecord, parse_roles, serialize_roles
from mutekeeper.moderation.errors import DuplicateSanctionError, StoreError
from mutekeeper.util.logger import get_logger

logger = get_logger("sanction_store")

_COLUMNS = "guild_id, user_id, restricted_role_id, taken_roles, reason, expires_at, created_at"
# SQLite's message for a primary key clash on (guild_id, user_id)
_DUPLICATE_SUBJECT = "UNIQUE constraint failed: muted_members.guild_id, muted_members.user_id"


def _row_to_record(row) -> SanctionRecord:
    return SanctionRecord(
        guild_id=GuildID(row[0]),
        user_id=UserID(row[1]),
        restricted_role_id=RoleID(row[2]),
        taken_roles=parse_roles(row[3]),
        reason=row[4],
        expires_at=row[5],
        created_at=row[6],
    )


class SanctionStore:
    """CRUD for the ``muted_members`` table, raising ``StoreError`` on failure."""

    def __init__(self, connection: ConnectionManager = db_connection) -> None:
        self._connection = connection

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, record: SanctionRecord) -> None:
        """
        Insert a new active mute.

        Raises:
            DuplicateSanctionError: The member already has an active mute in this guild.
            StoreError: Any other storage failure.
        """
        try:
            async with self._connection.transaction() as conn:
                await conn.execute(
                    f"INSERT INTO muted_members ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.guild_id.to_int(),
                        str(record.user_id),
                        record.restricted_role_id.to_int(),
                        serialize_roles(record.taken_roles),
                        record.reason,
                        record.expires_at,
                        record.created_at,
                    ),
                )
        except sqlite3.IntegrityError as exc:
            if not str(exc).startswith(_DUPLICATE_SUBJECT):
                raise StoreError("insert", str(exc)) from exc
            raise DuplicateSanctionError(
                "insert", f"user {record.user_id} is already muted in guild {record.guild_id}"
            ) from exc
        except (aiosqlite.Error, RuntimeError) as exc:
            raise StoreError("insert", str(exc)) from exc

        logger.debug(
            "[SANCTION STORE] Inserted mute for %s in guild %s (expires_at=%s)",
            record.user_id, record.guild_id, record.expires_at,
        )

    async def find_and_delete(self, guild_id: GuildID, user_id: UserID) -> Optional[SanctionRecord]:
        """
        Atomically remove and return the member's record.

        Returns:
            The removed record, or None if there was nothing to remove.

        Raises:
            StoreError: The delete could not be performed.
        """
        try:
            async with self._connection.transaction() as conn:
                cursor = await conn.execute(
                    f"DELETE FROM muted_members WHERE guild_id = ? AND user_id = ? RETURNING {_COLUMNS}",
                    (guild_id.to_int(), str(user_id)),
                )
                row = await cursor.fetchone()
                await cursor.close()
        except (aiosqlite.Error, RuntimeError) as exc:
            raise StoreError("find_and_delete", str(exc)) from exc

        if row is None:
            return None

        logger.debug("[SANCTION STORE] Removed mute for %s in guild %s", user_id, guild_id)
        return _row_to_record(row)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_by_subject(self, guild_id: GuildID, user_id: UserID) -> Optional[SanctionRecord]:
        """Return the member's active record, or None."""
        try:
            async with self._connection.read() as conn:
                cursor = await conn.execute(
                    f"SELECT {_COLUMNS} FROM muted_members WHERE guild_id = ? AND user_id = ? LIMIT 1",
                    (guild_id.to_int(), str(user_id)),
                )
                row = await cursor.fetchone()
        except (aiosqlite.Error, RuntimeError) as exc:
            raise StoreError("find_by_subject", str(exc)) from exc

        return _row_to_record(row) if row is not None else None

    async def list_active(self) -> List[SanctionRecord]:
        """Return every active record, soonest deadline first (no deadline last)."""
        return await self._select(
            f"SELECT {_COLUMNS} FROM muted_members "
            "ORDER BY expires_at IS NULL, expires_at",
            (),
            "list_active",
        )

    async def _select(self, sql: str, params: tuple, operation: str) -> List[SanctionRecord]:
        try:
            async with self._connection.read() as conn:
                cursor = await conn.execute(sql, params)
                rows = await cursor.fetchall()
        except (aiosqlite.Error, RuntimeError) as exc:
            raise StoreError(operation, str(exc)) from exc
        return [_row_to_record(row) for row in rows]


sanction_store = SanctionStore()
