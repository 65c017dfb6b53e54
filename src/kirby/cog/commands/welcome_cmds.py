"""
Welcome cog: configure and preview the message sent when a member joins.

This cog exposes:
- /ping: Liveness check
- /welcome set: Change one or more welcome fields in a single transaction
- /welcome simu: Send the welcome for yourself to the configured channel
- /welcome reset: Restore the defaults after a confirmation button

Everything under /welcome requires the Manage Server permission.
"""

from typing import List

import discord
from discord.ext import commands

from kirby.datatypes.discord_datatypes import GuildID
from kirby.datatypes.welcome_datatypes import MessageType, WelcomeUpdate
from kirby.exceptions import NotFoundError, StoreError, ValidationError
from kirby.settings.guild_welcome_store import GuildWelcomeStore
from kirby.ui.welcome_ui import ResetConfirmView, build_welcome_embed
from kirby.util.logger import get_logger
from kirby.util.discord_utils import has_manage_permission
from kirby.welcome.welcome_service import WelcomeService

logger = get_logger("welcome_commands")

STORE_FAILURE_MESSAGE = "Something went wrong while saving the welcome settings, please try again later."


async def _image_choices(ctx: discord.AutocompleteContext) -> List[str]:
    """Autocomplete loaded background names."""
    assets = getattr(getattr(ctx.cog, "service", None), "assets", None)
    if assets is None:
        return []
    typed = (ctx.value or "").lower()
    return [name for name in assets.image_names if typed in name.lower()][:25]


class WelcomeCog(commands.Cog):
    """Slash commands for the per-guild welcome message."""

    welcome = discord.SlashCommandGroup("welcome", "Configure the welcome message for new members")

    def __init__(
        self,
        bot: discord.Bot,
        store: GuildWelcomeStore,
        service: WelcomeService,
        *,
        reset_prompt_seconds: float = 5.0,
    ):
        self.bot = bot
        self.store = store
        self.service = service
        self.reset_prompt_seconds = reset_prompt_seconds
        logger.info("[WELCOME CMDS] Welcome cog loaded")

    async def _check_permissions(self, ctx: discord.ApplicationContext) -> bool:
        if not ctx.guild_id:
            await ctx.respond("This command can only be used in a server.", ephemeral=True)
            return False
        if not has_manage_permission(ctx.user):
            await ctx.respond("You need the Manage Server permission to do that.", ephemeral=True)
            return False
        return True

    async def _load_config(self, ctx: discord.ApplicationContext):
        """Read the guild's record, creating the default one if the guild was never seen."""
        guild_id = GuildID(ctx.guild_id)
        try:
            return await self.store.get(guild_id)
        except NotFoundError:
            await self.store.ensure_default(guild_id)
            return await self.store.get(guild_id)

    @commands.slash_command(name="ping", description="Check that Kirby is awake")
    async def ping(self, ctx: discord.ApplicationContext) -> None:
        await ctx.respond("pong!", ephemeral=True)

    @welcome.command(name="set", description="Change the welcome settings")
    async def welcome_set(
        self,
        ctx: discord.ApplicationContext,
        channel: discord.Option(discord.TextChannel, "Channel the welcome is sent to", required=False, default=None) = None,
        text: discord.Option(str, "Message text, placeholders: %guild% %mention% %username% %nickname%", required=False, default=None) = None,
        type: discord.Option(str, "Send text only or text with an image", choices=[t.value for t in MessageType], required=False, default=None) = None,
        image: discord.Option(str, "Background image", autocomplete=_image_choices, required=False, default=None) = None,
        imagetext: discord.Option(str, "Text drawn on the image", required=False, default=None) = None,
    ) -> None:
        """Apply every given option at once; either all of them are saved or none."""
        if not await self._check_permissions(ctx):
            return

        update = WelcomeUpdate(
            channel_id=str(channel.id) if channel is not None else None,
            message_type=type,
            message_template=text,
            image_key=image,
            image_text=imagetext,
        )
        if update.is_empty():
            await ctx.respond("Nothing to set.", ephemeral=True)
            return

        guild_id = GuildID(ctx.guild_id)
        try:
            await self.store.ensure_default(guild_id)
            config = await self.store.update(guild_id, update)
        except ValidationError as exc:
            await ctx.respond(f"Invalid value: {exc.message}", ephemeral=True)
            return
        except StoreError:
            logger.exception("[WELCOME CMDS] /welcome set failed for guild %s", guild_id)
            await ctx.respond(STORE_FAILURE_MESSAGE, ephemeral=True)
            return

        changed = ", ".join(field.label for field, _ in update.changes())
        await ctx.respond(f"Updated {changed}.", embed=build_welcome_embed(config), ephemeral=True)

    @welcome.command(name="simu", description="Send the welcome message for yourself")
    async def welcome_simu(self, ctx: discord.ApplicationContext) -> None:
        if not await self._check_permissions(ctx):
            return

        await ctx.defer(ephemeral=True)
        try:
            config = await self._load_config(ctx)
        except StoreError:
            logger.exception("[WELCOME CMDS] /welcome simu failed for guild %s", ctx.guild_id)
            await ctx.respond(STORE_FAILURE_MESSAGE, ephemeral=True)
            return

        if not config.is_configured:
            await ctx.respond("Set a welcome channel first with /welcome set.", ephemeral=True)
            return

        try:
            sent = await self.service.welcome_member(ctx.author, config)
        except discord.HTTPException as exc:
            logger.warning("[WELCOME CMDS] Could not send simulated welcome in guild %s: %s", ctx.guild_id, exc)
            await ctx.respond("I can't post in the welcome channel, check my permissions there.", ephemeral=True)
            return

        if sent is None:
            await ctx.respond("The welcome channel no longer exists, set a new one with /welcome set.", ephemeral=True)
            return
        await ctx.respond(f"Welcome sent to <#{config.channel_id}>.", ephemeral=True)

    @welcome.command(name="reset", description="Restore the default welcome settings")
    async def welcome_reset(self, ctx: discord.ApplicationContext) -> None:
        if not await self._check_permissions(ctx):
            return

        view = ResetConfirmView(
            self.store,
            ctx.guild_id,
            getattr(ctx.user, "id", None),
            timeout_seconds=self.reset_prompt_seconds,
        )
        view.prompt = ctx.interaction
        await ctx.respond(
            "Reset the welcome settings to their defaults?",
            view=view,
            ephemeral=True,
        )


def setup(bot: discord.Bot, *, store: GuildWelcomeStore, service: WelcomeService, reset_prompt_seconds: float = 5.0) -> None:
    """Register the WelcomeCog with the bot."""
    bot.add_cog(WelcomeCog(bot, store, service, reset_prompt_seconds=reset_prompt_seconds))
