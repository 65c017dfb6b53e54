"""
Repository for the guild_welcome table.

Plain SQL only: no transactions, no validation. Callers pass a connection
that is already inside the transaction they want.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Tuple

import aiosqlite

from kirby.datatypes.discord_datatypes import GuildID
from kirby.datatypes.welcome_datatypes import WelcomeField
from kirby.util.logger import get_logger

logger = get_logger("guild_welcome_repo")


@dataclass
class GuildWelcomeRow:
    """Raw DB row for a guild's welcome configuration."""
    guild_id: str
    channel_id: str
    type: str
    message_text: str
    image: str
    image_text: str


class GuildWelcomeRepository:
    """CRUD for the guild_welcome table."""

    async def get(
        self, conn: aiosqlite.Connection, guild_id: GuildID
    ) -> GuildWelcomeRow | None:
        """Fetch a single guild's row, or None if it has none."""
        async with conn.execute(
            """
            SELECT guild_id, channel_id, type, message_text, image, image_text
            FROM guild_welcome
            WHERE guild_id = ?
            """,
            (str(guild_id),),
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None

        return GuildWelcomeRow(
            guild_id=row[0],
            channel_id=row[1],
            type=row[2],
            message_text=row[3],
            image=row[4],
            image_text=row[5],
        )

    async def insert_if_absent(
        self, conn: aiosqlite.Connection, row: GuildWelcomeRow
    ) -> bool:
        """Insert ``row`` unless the guild already has one. Returns True if inserted."""
        cursor = await conn.execute(
            """
            INSERT INTO guild_welcome (guild_id, channel_id, type, message_text, image, image_text)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(guild_id) DO NOTHING
            """,
            (row.guild_id, row.channel_id, row.type, row.message_text, row.image, row.image_text),
        )
        return cursor.rowcount == 1

    async def update_fields(
        self,
        conn: aiosqlite.Connection,
        guild_id: GuildID,
        values: Iterable[Tuple[WelcomeField, str]],
    ) -> bool:
        """
        Set the given columns on the guild's row. Returns False if no row matched.

        Column names come from :class:`WelcomeField`, never from user input.
        """
        pairs = list(values)
        if not pairs:
            return await self.exists(conn, guild_id)

        assignments = ", ".join(f"{field.column} = ?" for field, _ in pairs)
        params = [value for _, value in pairs]
        params.append(str(guild_id))
        cursor = await conn.execute(
            f"UPDATE guild_welcome SET {assignments} WHERE guild_id = ?",
            params,
        )
        return cursor.rowcount == 1

    async def delete(
        self, conn: aiosqlite.Connection, guild_id: GuildID
    ) -> bool:
        """Delete the guild's row. Returns True if one existed."""
        cursor = await conn.execute(
            "DELETE FROM guild_welcome WHERE guild_id = ?",
            (str(guild_id),),
        )
        return cursor.rowcount == 1

    async def exists(
        self, conn: aiosqlite.Connection, guild_id: GuildID
    ) -> bool:
        async with conn.execute(
            "SELECT 1 FROM guild_welcome WHERE guild_id = ?",
            (str(guild_id),),
        ) as cursor:
            return await cursor.fetchone() is not None
