"""
Discord helpers shared by the welcome commands and listeners.

Stateless functions that translate between Discord objects and Kirby's
welcome datatypes.
"""

from __future__ import annotations

import asyncio
import io
from typing import Optional

import discord

from kirby.datatypes.welcome_datatypes import WelcomeContext, WelcomeMessage
from kirby.util.image_utils import download_image_to_pil
from kirby.util.logger import get_logger

logger = get_logger("discord_utils")

def has_manage_permission(user: object) -> bool:
    """Return True if ``user`` is a member allowed to manage the guild."""
    permissions = getattr(user, "guild_permissions", None)
    return bool(permissions is not None and getattr(permissions, "manage_guild", False))


def avatar_url_for(member: discord.abc.User) -> str:
    """URL of the avatar the member is shown with, or an empty string."""
    avatar = getattr(member, "display_avatar", None)
    return str(avatar.url) if avatar is not None else ""


def build_welcome_context(member: discord.Member, *, avatar=None) -> WelcomeContext:
    """
    Collect the placeholder and image values for a joining member.

    ``username`` is the account name, ``discriminated_name`` is the full
    ``name#discriminator`` form Discord prints for the user (just the name for
    accounts without a discriminator) and ``nickname`` is the name shown in
    the guild.
    """
    guild = member.guild
    return WelcomeContext(
        mention=member.mention,
        username=member.name,
        discriminated_name=str(member),
        nickname=member.display_name,
        avatar_url=avatar_url_for(member),
        guild_name=guild.name,
        member_count=guild.member_count or 0,
        avatar=avatar,
    )


async def fetch_welcome_context(member: discord.Member) -> WelcomeContext:
    """Build the context for ``member`` with the avatar downloaded off the event loop."""
    context = build_welcome_context(member)
    avatar = await asyncio.to_thread(download_image_to_pil, context.avatar_url)
    if avatar is None:
        return context
    return build_welcome_context(member, avatar=avatar)


async def send_welcome_message(
    channel: discord.abc.Messageable, message: WelcomeMessage
) -> Optional[discord.Message]:
    """Send a rendered welcome to ``channel``, attaching the image if there is one."""
    if message.image is not None:
        file = discord.File(io.BytesIO(message.image), filename=message.filename)
        return await channel.send(content=message.content, file=file)
    return await channel.send(content=message.content)
