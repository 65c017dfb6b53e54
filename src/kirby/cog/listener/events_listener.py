"""Event listener Cog for Kirby.

Keeps the welcome store in step with the guilds the bot is in and sends the
welcome when a member joins:

- on_ready: make sure every current guild has a record
- on_guild_join: create the default record
- on_guild_remove: drop the guild's record
- on_member_join: render and send the guild's welcome

Storage and Discord failures are logged here and never escape a handler.
"""

import discord
from discord.ext import commands

from kirby.datatypes.discord_datatypes import GuildID
from kirby.exceptions import NotFoundError, StoreError
from kirby.settings.guild_welcome_store import GuildWelcomeStore
from kirby.util.logger import get_logger
from kirby.welcome.welcome_service import WelcomeService

logger = get_logger("events_listener")


class EventsListenerCog(commands.Cog):
    """Handles guild lifecycle and member join events."""

    def __init__(self, bot: discord.Bot, store: GuildWelcomeStore, service: WelcomeService) -> None:
        self.bot = bot
        self.store = store
        self.service = service
        logger.info("[EVENTS LISTENER] Events listener cog loaded")

    # ------------------------------------------------------------------
    # Lifecycle events
    # ------------------------------------------------------------------

    @commands.Cog.listener(name="on_ready")
    async def on_ready(self) -> None:
        """Set bot presence and create missing records for every guild."""
        if not self.bot.user:
            logger.warning("[EVENTS LISTENER] Bot partially connected, user info not yet available.")
            return

        await self.bot.change_presence(
            status=discord.Status.online,
            activity=discord.Activity(type=discord.ActivityType.watching, name="the door for new friends"),
        )
        logger.info("[EVENTS LISTENER] Bot connected as %s (ID: %s)", self.bot.user, self.bot.user.id)

        created = 0
        for guild in self.bot.guilds:
            if await self._ensure_default(guild):
                created += 1
        logger.info(
            "[EVENTS LISTENER] Tracking %d guild(s), %d new welcome record(s)", len(self.bot.guilds), created
        )

    @commands.Cog.listener(name="on_guild_join")
    async def on_guild_join(self, guild: discord.Guild) -> None:
        logger.debug("[EVENTS LISTENER] Bot joined guild: %s (ID: %s)", guild.name, guild.id)
        await self._ensure_default(guild)

    @commands.Cog.listener(name="on_guild_remove")
    async def on_guild_remove(self, guild: discord.Guild) -> None:
        """Delete the guild's record when the bot leaves a server."""
        logger.debug("[EVENTS LISTENER] Bot removed from guild: %s (ID: %s)", guild.name, guild.id)
        try:
            removed = await self.store.delete(GuildID(guild.id))
        except StoreError:
            logger.exception("[EVENTS LISTENER] Failed to clean up guild '%s' (ID: %s)", guild.name, guild.id)
            return

        if removed:
            logger.info("[EVENTS LISTENER] Cleaned up welcome record for guild '%s' (ID: %s)", guild.name, guild.id)

    # ------------------------------------------------------------------
    # Member events
    # ------------------------------------------------------------------

    @commands.Cog.listener(name="on_member_join")
    async def on_member_join(self, member: discord.Member) -> None:
        if member.bot:
            return

        guild = member.guild
        try:
            await self.service.welcome_member(member)
        except NotFoundError:
            logger.info("[EVENTS LISTENER] Guild %s had no welcome record, creating one", guild.id)
            await self._ensure_default(guild)
        except StoreError:
            logger.exception("[EVENTS LISTENER] Could not read welcome settings for guild %s", guild.id)
        except discord.HTTPException:
            logger.exception("[EVENTS LISTENER] Could not send welcome for %s in guild %s", member, guild.id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _ensure_default(self, guild: discord.Guild) -> bool:
        try:
            return await self.store.ensure_default(GuildID(guild.id))
        except StoreError:
            logger.exception("[EVENTS LISTENER] Failed to initialise guild '%s' (ID: %s)", guild.name, guild.id)
            return False


def setup(bot: discord.Bot, *, store: GuildWelcomeStore, service: WelcomeService) -> None:
    """Register the EventsListenerCog with the bot."""
    bot.add_cog(EventsListenerCog(bot, store, service))
