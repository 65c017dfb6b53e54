"""
Delivers welcome messages to guild channels.

Glue between the store, the renderer and Discord: reads the guild's record,
fetches the member's avatar, renders off the event loop and sends the result
to the configured channel. Used by both the member-join listener and
``/welcome simu``.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import discord

from kirby.datatypes.discord_datatypes import GuildID
from kirby.datatypes.welcome_datatypes import DEFAULT_IMAGE_KEY, GuildWelcomeConfig, WelcomeMessage
from kirby.settings.guild_welcome_store import GuildWelcomeStore
from kirby.util.asset_cache import AssetCache
from kirby.util.discord_utils import fetch_welcome_context, send_welcome_message
from kirby.util.logger import get_logger
from kirby.welcome.welcome_renderer import render_welcome_message

logger = get_logger("welcome_service")


class WelcomeService:
    """Renders and sends welcomes using the shared store and asset cache."""

    def __init__(
        self,
        store: GuildWelcomeStore,
        assets: AssetCache,
        *,
        default_image_key: str = DEFAULT_IMAGE_KEY,
        font_family: Optional[str] = None,
    ) -> None:
        self.store = store
        self.assets = assets
        self.default_image_key = default_image_key
        self.font_family = font_family

    def resolve_channel(self, guild: discord.Guild, config: GuildWelcomeConfig) -> Optional[discord.abc.Messageable]:
        """The configured channel if it still exists in ``guild``."""
        try:
            channel_id = int(config.channel_id)
        except ValueError:
            logger.warning(
                "[WELCOME SERVICE] Guild %s has a malformed channel id %r", config.guild_id, config.channel_id
            )
            return None
        return guild.get_channel(channel_id)

    async def render_for(self, member: discord.Member, config: GuildWelcomeConfig) -> WelcomeMessage:
        """Render ``config`` for ``member`` in a worker thread."""
        context = await fetch_welcome_context(member)
        return await asyncio.to_thread(
            render_welcome_message,
            config,
            context,
            self.assets,
            default_image_key=self.default_image_key,
            font_family=self.font_family,
        )

    async def welcome_member(
        self,
        member: discord.Member,
        config: Optional[GuildWelcomeConfig] = None,
    ) -> Optional[discord.Message]:
        """
        Send the guild's welcome for ``member``.

        Args:
            member: The member being welcomed.
            config: The guild's record, read from the store when omitted.

        Returns:
            The sent message, or None if the guild has no usable channel.

        Raises:
            NotFoundError: If the guild has no record.
            StoreError: On any other storage failure.
            discord.HTTPException: If Discord rejects the message.
        """
        if config is None:
            config = await self.store.get(GuildID(member.guild.id))

        if not config.is_configured:
            logger.debug("[WELCOME SERVICE] Guild %s has no welcome channel, skipping", config.guild_id)
            return None

        channel = self.resolve_channel(member.guild, config)
        if channel is None:
            logger.warning(
                "[WELCOME SERVICE] Welcome channel %s of guild %s no longer exists",
                config.channel_id,
                config.guild_id,
            )
            return None

        message = await self.render_for(member, config)
        sent = await send_welcome_message(channel, message)
        logger.info("[WELCOME SERVICE] Welcomed %s in guild %s", member, config.guild_id)
        return sent
