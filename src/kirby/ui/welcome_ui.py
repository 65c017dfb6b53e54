import datetime
from typing import Optional

import discord

from kirby.datatypes.welcome_datatypes import GuildWelcomeConfig, MessageType
from kirby.exceptions import StoreError
from kirby.settings.guild_welcome_store import GuildWelcomeStore
from kirby.util.discord_utils import has_manage_permission
from kirby.util.logger import get_logger

logger = get_logger("welcome_ui")

MESSAGE_TYPE_LABELS: dict[MessageType, str] = {
    MessageType.TEXT: "Text only",
    MessageType.IMAGE: "Text + image",
}


def build_welcome_embed(config: GuildWelcomeConfig) -> discord.Embed:
    """Create an embed summarizing a guild's welcome configuration."""
    channel = f"<#{config.channel_id}>" if config.channel_id else "Not set (welcome disabled)"

    embed = discord.Embed(
        title="Welcome Settings",
        color=discord.Color.blurple() if config.is_configured else discord.Color.light_grey(),
        timestamp=datetime.datetime.now(datetime.timezone.utc),
    )
    embed.add_field(name="Channel", value=channel, inline=False)
    embed.add_field(name="Type", value=MESSAGE_TYPE_LABELS.get(config.message_type, str(config.message_type)))
    embed.add_field(name="Image", value=config.image_key or "-")
    embed.add_field(name="Message", value=config.message_template or "-", inline=False)
    embed.add_field(name="Image text", value=config.image_text or "-", inline=False)
    embed.set_footer(text="Placeholders: %guild% %mention% %username% %nickname%")
    return embed


class ResetConfirmView(discord.ui.View):
    """
    Confirmation prompt for ``/welcome reset``.

    The view's own timeout removes the prompt, so the command handler returns
    as soon as the prompt is sent.
    """

    def __init__(
        self,
        store: GuildWelcomeStore,
        guild_id: int,
        invoker_id: Optional[int],
        *,
        timeout_seconds: float = 5.0,
    ):
        super().__init__(timeout=timeout_seconds)
        self.store = store
        self.guild_id = guild_id
        self.invoker_id = invoker_id
        self.prompt: Optional[discord.Interaction] = None
        self.confirmed = False

    def can_confirm(self, user: Optional[discord.abc.Snowflake]) -> bool:
        """Only the member who asked for the reset, with Manage Server, may confirm."""
        if user is None:
            return False
        if self.invoker_id is not None and user.id != self.invoker_id:
            return False
        return has_manage_permission(user)

    async def confirm_reset(self, interaction: discord.Interaction) -> None:
        if not self.can_confirm(interaction.user):
            await interaction.response.send_message(
                "Only the member who ran /welcome reset can confirm it.",
                ephemeral=True,
            )
            return

        try:
            await self.store.reset(self.guild_id)
        except StoreError:
            logger.exception("[WELCOME UI] Reset failed for guild %s", self.guild_id)
            await interaction.response.send_message(
                "Could not reset the welcome settings, please try again later.",
                ephemeral=True,
            )
            return

        self.confirmed = True
        for child in self.children:
            if isinstance(child, discord.ui.Button):
                child.disabled = True
        await interaction.response.edit_message(content="Welcome settings reset to defaults.", view=self)
        self.stop()
        logger.info("[WELCOME UI] Guild %s reset by %s", self.guild_id, interaction.user)

    @discord.ui.button(label="Reset", style=discord.ButtonStyle.danger, emoji="🗑️")
    async def reset_button(self, button: discord.ui.Button, interaction: discord.Interaction) -> None:
        await self.confirm_reset(interaction)

    async def on_timeout(self) -> None:
        if self.prompt is None or self.confirmed:
            return
        try:
            await self.prompt.delete_original_response()
        except discord.HTTPException as exc:
            logger.debug("[WELCOME UI] Could not delete reset prompt: %s", exc)
