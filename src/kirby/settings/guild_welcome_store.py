"""
GuildWelcomeStore: durable, transactional welcome configuration per guild.

Responsibilities:
- Create the default record the first time a guild is seen
- Read a guild's record, reporting absence as NotFoundError
- Apply one or many field changes in a single transaction
- Reset a record to defaults atomically
- Delete a record when the guild is no longer tracked

All raw SQL lives in GuildWelcomeRepository. The store owns the connection
pool, the transactions, validation and error reporting.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, List, Optional, Tuple, Union

from kirby.database.db_connection import ConnectionPool
from kirby.database.db_schema import SchemaManager
from kirby.datatypes.discord_datatypes import GuildID
from kirby.datatypes.welcome_datatypes import (
    GuildWelcomeConfig,
    MessageType,
    WelcomeDefaults,
    WelcomeField,
    WelcomeUpdate,
)
from kirby.exceptions import NotFoundError, StoreError, TransactionError, ValidationError
from kirby.settings.repositories import GuildWelcomeRepository, GuildWelcomeRow
from kirby.util.logger import get_logger

logger = get_logger("guild_welcome_store")


class GuildWelcomeStore:
    """
    Owns the connection pool and every read and write of guild_welcome.

    Args:
        pool: Connection pool for the database file.
        defaults: Values used for new and reset records.
        image_keys: Background names accepted for ``image_key``. When empty,
            any string is accepted.
    """

    def __init__(
        self,
        pool: ConnectionPool,
        defaults: Optional[WelcomeDefaults] = None,
        image_keys: Iterable[str] = (),
    ) -> None:
        self._pool = pool
        self._repo = GuildWelcomeRepository()
        self.defaults = defaults or WelcomeDefaults()
        self.image_keys = frozenset(image_keys)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Open the pool and create the schema."""
        await self._pool.open()
        async with self._operation("initialize", None):
            async with self._pool.transaction() as conn:
                await SchemaManager.initialize_schema(conn)
        logger.info("[WELCOME STORE] Ready")

    async def close(self) -> None:
        await self._pool.close()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def ensure_default(self, guild_id: Union[GuildID, str, int]) -> bool:
        """
        Insert the default record unless the guild already has one.

        Safe to call concurrently for the same guild: the insert itself is
        conditional, so exactly one caller creates the row.

        Returns:
            True if a record was created, False if one already existed.
        """
        guild_id = GuildID(guild_id)
        row = _config_to_row(GuildWelcomeConfig.default(guild_id, self.defaults))
        async with self._operation("ensure_default", guild_id):
            async with self._pool.transaction() as conn:
                created = await self._repo.insert_if_absent(conn, row)

        if created:
            logger.info("[WELCOME STORE] Created default welcome config for guild %s", guild_id)
        return created

    async def get(self, guild_id: Union[GuildID, str, int]) -> GuildWelcomeConfig:
        """
        Read the guild's current record.

        Raises:
            NotFoundError: If the guild has no record.
        """
        guild_id = GuildID(guild_id)
        async with self._operation("get", guild_id):
            async with self._pool.read() as conn:
                row = await self._repo.get(conn, guild_id)

        if row is None:
            raise NotFoundError(
                f"No welcome config for guild {guild_id}",
                operation="get",
                guild_id=str(guild_id),
            )
        return _row_to_config(row)

    async def set_field(
        self,
        guild_id: Union[GuildID, str, int],
        field: WelcomeField,
        value: Union[str, MessageType],
    ) -> GuildWelcomeConfig:
        """
        Change exactly one field and leave the others untouched.

        Raises:
            NotFoundError: If the guild has no record.
            ValidationError: If ``value`` is not acceptable for ``field``.
        """
        return await self.update(guild_id, WelcomeUpdate.single(field, value))

    async def update(
        self,
        guild_id: Union[GuildID, str, int],
        update: WelcomeUpdate,
    ) -> GuildWelcomeConfig:
        """
        Apply every field set in ``update`` in one transaction.

        Either all changes commit or none do. An empty update changes nothing.

        Returns:
            The record as committed.

        Raises:
            NotFoundError: If the guild has no record.
            ValidationError: If any value is not acceptable.
        """
        guild_id = GuildID(guild_id)
        values = self._validate(guild_id, update)

        async with self._operation("update", guild_id):
            async with self._pool.transaction() as conn:
                if not await self._repo.update_fields(conn, guild_id, values):
                    raise NotFoundError(
                        f"No welcome config for guild {guild_id}",
                        operation="update",
                        guild_id=str(guild_id),
                    )
                row = await self._repo.get(conn, guild_id)

        if values:
            logger.info(
                "[WELCOME STORE] Updated %s for guild %s",
                ", ".join(field.label for field, _ in values),
                guild_id,
            )
        return _row_to_config(row)

    async def reset(self, guild_id: Union[GuildID, str, int]) -> GuildWelcomeConfig:
        """
        Replace the guild's record with the default one.

        Delete and insert run in one transaction, so readers see either the
        old record or the default record and nothing in between.
        """
        guild_id = GuildID(guild_id)
        config = GuildWelcomeConfig.default(guild_id, self.defaults)
        async with self._operation("reset", guild_id):
            async with self._pool.transaction() as conn:
                await self._repo.delete(conn, guild_id)
                await self._repo.insert_if_absent(conn, _config_to_row(config))

        logger.info("[WELCOME STORE] Reset welcome config for guild %s", guild_id)
        return config

    async def delete(self, guild_id: Union[GuildID, str, int]) -> bool:
        """Remove the guild's record. Returns True if one existed."""
        guild_id = GuildID(guild_id)
        async with self._operation("delete", guild_id):
            async with self._pool.transaction() as conn:
                removed = await self._repo.delete(conn, guild_id)

        if removed:
            logger.info("[WELCOME STORE] Deleted welcome config for guild %s", guild_id)
        return removed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate(
        self, guild_id: GuildID, update: WelcomeUpdate
    ) -> List[Tuple[WelcomeField, str]]:
        """Turn an update into column values, rejecting anything unacceptable."""
        values: List[Tuple[WelcomeField, str]] = []
        for field, value in update.changes():
            if field is WelcomeField.MESSAGE_TYPE:
                try:
                    value = MessageType.parse(value)
                except ValueError as exc:
                    raise ValidationError(
                        str(exc), operation="update", guild_id=str(guild_id),
                        details={"field": field.label, "value": value},
                    ) from exc
                values.append((field, value.value))
                continue

            if not isinstance(value, str):
                raise ValidationError(
                    f"{field.label} must be text, got {type(value).__name__}",
                    operation="update", guild_id=str(guild_id),
                    details={"field": field.label},
                )
            if field is WelcomeField.IMAGE_KEY and self.image_keys and value not in self.image_keys:
                raise ValidationError(
                    f"Unknown image {value!r}",
                    operation="update", guild_id=str(guild_id),
                    details={"field": field.label, "value": value, "choices": sorted(self.image_keys)},
                )
            values.append((field, value))
        return values

    @asynccontextmanager
    async def _operation(self, operation: str, guild_id: Optional[GuildID]) -> AsyncIterator[None]:
        """Log store failures and tag them with the guild before re-raising."""
        try:
            yield
        except NotFoundError:
            raise
        except StoreError as exc:
            if exc.guild_id is None and guild_id is not None:
                exc.guild_id = str(guild_id)
                exc.details["guild_id"] = str(guild_id)
            logger.error(
                "[WELCOME STORE] %s failed for guild %s: %s", operation, guild_id, exc.message
            )
            raise
        except Exception as exc:
            logger.exception("[WELCOME STORE] %s failed for guild %s", operation, guild_id)
            raise TransactionError(
                f"{operation} failed: {exc}",
                operation=operation,
                guild_id=str(guild_id) if guild_id is not None else None,
            ) from exc


# ------------------------------------------------------------------
# Private helpers: convert between GuildWelcomeConfig and repo rows
# ------------------------------------------------------------------

def _row_to_config(row: GuildWelcomeRow) -> GuildWelcomeConfig:
    """Build a GuildWelcomeConfig from a raw row."""
    try:
        message_type = MessageType.parse(row.type)
    except ValueError:
        logger.warning(
            "[WELCOME STORE] Guild %s has unknown message type %r, treating it as text",
            row.guild_id,
            row.type,
        )
        message_type = MessageType.TEXT

    return GuildWelcomeConfig(
        guild_id=GuildID(row.guild_id),
        channel_id=row.channel_id,
        message_type=message_type,
        message_template=row.message_text,
        image_key=row.image,
        image_text=row.image_text,
    )


def _config_to_row(config: GuildWelcomeConfig) -> GuildWelcomeRow:
    """Build a GuildWelcomeRow from a GuildWelcomeConfig."""
    return GuildWelcomeRow(
        guild_id=str(config.guild_id),
        channel_id=config.channel_id,
        type=config.message_type.value,
        message_text=config.message_template,
        image=config.image_key,
        image_text=config.image_text,
    )
