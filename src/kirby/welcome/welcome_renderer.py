"""
Welcome message rendering.

Turns a guild's welcome configuration, the joining member's context and the
shared asset cache into a :class:`WelcomeMessage`. Nothing here touches the
network, the database or the filesystem, so renders can run concurrently in
worker threads without locks.
"""

from __future__ import annotations

import re
from io import BytesIO
from typing import Optional

from PIL import Image, ImageDraw, ImageFont, ImageOps

from kirby.datatypes.welcome_datatypes import (
    DEFAULT_IMAGE_KEY,
    GuildWelcomeConfig,
    MessageType,
    WelcomeContext,
    WelcomeMessage,
)
from kirby.exceptions import ValidationError
from kirby.util.asset_cache import AssetCache, font_key
from kirby.util.image_utils import circular_crop
from kirby.util.logger import get_logger

logger = get_logger("welcome_renderer")

CANVAS_SIZE = (1024, 500)
CANVAS_FALLBACK_COLOR = (54, 57, 63, 255)
TEXT_MARGIN = 40
AVATAR_SIZE = 200
AVATAR_TOP = 40
TEXT_COLOR = (255, 255, 255, 255)
SUBTEXT_COLOR = (200, 200, 200, 255)
SHADOW_COLOR = (0, 0, 0, 160)
LINE_SPACING = 12

_PLACEHOLDER_PATTERN = re.compile(r"%(guild|mention|username|nickname)%")


def substitute_placeholders(template: str, context: WelcomeContext) -> str:
    """
    Replace ``%guild%``, ``%mention%``, ``%username%`` and ``%nickname%``.

    One left-to-right pass: text coming from the context is never scanned
    again, and anything that is not exactly one of the four tokens is kept
    as written.
    """
    values = {
        "guild": context.guild_name,
        "mention": context.mention,
        "username": context.username,
        "nickname": context.nickname,
    }
    return _PLACEHOLDER_PATTERN.sub(lambda match: values[match.group(1)], template)


def resolve_background(assets: AssetCache, image_key: str, default_image_key: str) -> Optional[Image.Image]:
    """Pick the background for ``image_key``, falling back instead of failing."""
    if image_key in assets.images:
        return assets.images[image_key]

    logger.debug("[RENDERER] Unknown image %r, falling back to %r", image_key, default_image_key)
    if default_image_key in assets.images:
        return assets.images[default_image_key]
    if assets.image_names:
        return assets.images[assets.image_names[0]]
    return None


def resolve_font_family(assets: AssetCache, family: Optional[str]) -> Optional[str]:
    if family and family in assets.font_families:
        return family
    return assets.font_families[0] if assets.font_families else None


def _font_faces(assets: AssetCache, family: Optional[str]):
    family = resolve_font_family(assets, family)
    if family is None:
        return None, None
    return assets.fonts.get(font_key(family, True)), assets.fonts.get(font_key(family, False))


def secondary_font(assets: AssetCache, family: Optional[str]) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    """Small face for secondary lines, else the large one, else Pillow's built-in."""
    large, small = _font_faces(assets, family)
    if small is not None:
        return small
    return large if large is not None else ImageFont.load_default()


def choose_font(
    assets: AssetCache,
    family: Optional[str],
    text: str,
    max_width: int,
) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    """
    Large face when the text fits in ``max_width``, small face otherwise.

    If only one of the two faces exists it is used either way; with no
    loaded font at all, Pillow's built-in face is returned.
    """
    large, small = _font_faces(assets, family)
    if large is not None and (small is None or large.getlength(text) <= max_width):
        return large
    if small is not None:
        return small
    return ImageFont.load_default()


def _draw_centered(
    draw: ImageDraw.ImageDraw,
    y: int,
    text: str,
    font: ImageFont.ImageFont | ImageFont.FreeTypeFont,
    fill,
) -> int:
    """Draw ``text`` horizontally centred at ``y`` and return the next free y."""
    if not text:
        return y
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    x = (CANVAS_SIZE[0] - (right - left)) // 2 - left
    draw.text((x + 2, y + 2), text, font=font, fill=SHADOW_COLOR)
    draw.text((x, y), text, font=font, fill=fill)
    return y + (bottom - top) + LINE_SPACING


def compose_welcome_image(
    background: Optional[Image.Image],
    context: WelcomeContext,
    image_text: str,
    assets: AssetCache,
    font_family: Optional[str] = None,
) -> Image.Image:
    """Draw avatar, image text and member details over a copy of ``background``."""
    if background is None:
        canvas = Image.new("RGBA", CANVAS_SIZE, CANVAS_FALLBACK_COLOR)
    else:
        canvas = ImageOps.fit(background.convert("RGBA"), CANVAS_SIZE, method=Image.Resampling.LANCZOS)

    y = AVATAR_TOP
    if context.avatar is not None:
        avatar = circular_crop(context.avatar, AVATAR_SIZE)
        canvas.alpha_composite(avatar, ((CANVAS_SIZE[0] - AVATAR_SIZE) // 2, y))
        y += AVATAR_SIZE + 2 * LINE_SPACING
    else:
        y += AVATAR_SIZE // 2

    draw = ImageDraw.Draw(canvas, "RGBA")
    max_width = CANVAS_SIZE[0] - 2 * TEXT_MARGIN

    headline_font = choose_font(assets, font_family, image_text, max_width)
    y = _draw_centered(draw, y, image_text, headline_font, TEXT_COLOR)

    small_font = secondary_font(assets, font_family)
    y = _draw_centered(draw, y, context.discriminated_name, small_font, SUBTEXT_COLOR)
    if context.member_count > 0:
        _draw_centered(draw, y, f"member #{context.member_count}", small_font, SUBTEXT_COLOR)

    return canvas


def render_welcome_message(
    config: GuildWelcomeConfig,
    context: WelcomeContext,
    assets: AssetCache,
    *,
    default_image_key: str = DEFAULT_IMAGE_KEY,
    font_family: Optional[str] = None,
) -> WelcomeMessage:
    """
    Build the outgoing welcome for ``config`` and ``context``.

    Args:
        config: A configured record (non-empty channel).
        context: Data about the joining member and the guild.
        assets: The shared asset cache.
        default_image_key: Background used when ``config.image_key`` is not loaded.
        font_family: Font family to draw with; the first loaded family if None.

    Returns:
        Plain text for ``MessageType.TEXT``; PNG bytes plus caption for
        ``MessageType.IMAGE``.

    Raises:
        ValidationError: If the record has no channel configured.
    """
    if not config.is_configured:
        raise ValidationError(
            "Welcome channel is not configured",
            operation="render",
            guild_id=str(config.guild_id),
        )

    content = substitute_placeholders(config.message_template, context)
    if config.message_type is MessageType.TEXT:
        return WelcomeMessage(content=content)

    background = resolve_background(assets, config.image_key, default_image_key)
    image_text = substitute_placeholders(config.image_text, context)
    image = compose_welcome_image(background, context, image_text, assets, font_family)

    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return WelcomeMessage(content=content, image=buffer.getvalue())
