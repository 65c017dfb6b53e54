"""
Data structures for guild welcome configuration and rendering.

Database schema:
- guild_welcome table with columns: guild_id, channel_id, type, message_text, image, image_text
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterator, Optional, Tuple, Union

from PIL import Image

from kirby.datatypes.discord_datatypes import GuildID


DEFAULT_MESSAGE_TEMPLATE = "welcome to %guild%, %mention%!"
DEFAULT_IMAGE_KEY = "original"
WELCOME_IMAGE_FILENAME = "welcome.png"


class MessageType(Enum):
    """How the welcome is delivered."""

    TEXT = "text"
    IMAGE = "image"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: Union[str, "MessageType"]) -> "MessageType":
        """
        Resolve a stored or user-supplied value to a MessageType.

        Raises:
            ValueError: If the value names no known message type.
        """
        if isinstance(value, MessageType):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        raise ValueError(f"Unknown message type: {value!r}")


class WelcomeField(Enum):
    """The mutable fields of a welcome configuration, valued by column name."""

    CHANNEL = "channel_id"
    MESSAGE_TYPE = "type"
    MESSAGE_TEMPLATE = "message_text"
    IMAGE_KEY = "image"
    IMAGE_TEXT = "image_text"

    @property
    def column(self) -> str:
        return self.value

    @property
    def label(self) -> str:
        """Name shown to users in command replies."""
        return _FIELD_LABELS[self]


_FIELD_LABELS = {
    WelcomeField.CHANNEL: "channel",
    WelcomeField.MESSAGE_TYPE: "type",
    WelcomeField.MESSAGE_TEMPLATE: "text",
    WelcomeField.IMAGE_KEY: "image",
    WelcomeField.IMAGE_TEXT: "imagetext",
}


@dataclass(frozen=True, slots=True)
class WelcomeDefaults:
    """Values a fresh or reset welcome configuration starts with."""

    message_template: str = DEFAULT_MESSAGE_TEMPLATE
    image_key: str = DEFAULT_IMAGE_KEY


@dataclass(frozen=True, slots=True)
class GuildWelcomeConfig:
    """Persistent per-guild welcome configuration."""

    guild_id: GuildID
    channel_id: str = ""
    message_type: MessageType = MessageType.TEXT
    message_template: str = DEFAULT_MESSAGE_TEMPLATE
    image_key: str = DEFAULT_IMAGE_KEY
    image_text: str = ""

    @classmethod
    def default(cls, guild_id: GuildID, defaults: Optional[WelcomeDefaults] = None) -> "GuildWelcomeConfig":
        defaults = defaults or WelcomeDefaults()
        return cls(
            guild_id=GuildID(guild_id),
            message_template=defaults.message_template,
            image_key=defaults.image_key,
        )

    @property
    def is_configured(self) -> bool:
        """A record with no channel is disabled and must not be rendered."""
        return bool(self.channel_id)

    def with_changes(self, update: "WelcomeUpdate") -> "GuildWelcomeConfig":
        """Return a copy with every field set in ``update`` applied."""
        return replace(self, **{_FIELD_ATTRIBUTES[field]: value for field, value in update.changes()})


_FIELD_ATTRIBUTES = {
    WelcomeField.CHANNEL: "channel_id",
    WelcomeField.MESSAGE_TYPE: "message_type",
    WelcomeField.MESSAGE_TEMPLATE: "message_template",
    WelcomeField.IMAGE_KEY: "image_key",
    WelcomeField.IMAGE_TEXT: "image_text",
}


@dataclass(frozen=True, slots=True)
class WelcomeUpdate:
    """
    A batch of field changes applied in one transaction.

    ``None`` leaves the field untouched; an empty string is a real value.
    """

    channel_id: Optional[str] = None
    message_type: Optional[MessageType] = None
    message_template: Optional[str] = None
    image_key: Optional[str] = None
    image_text: Optional[str] = None

    @classmethod
    def single(cls, field: WelcomeField, value: Union[str, MessageType]) -> "WelcomeUpdate":
        return cls(**{_FIELD_ATTRIBUTES[field]: value})

    def changes(self) -> Iterator[Tuple[WelcomeField, Union[str, MessageType]]]:
        for field in WelcomeField:
            value = getattr(self, _FIELD_ATTRIBUTES[field])
            if value is not None:
                yield field, value

    def is_empty(self) -> bool:
        return next(self.changes(), None) is None


@dataclass(frozen=True, slots=True)
class WelcomeContext:
    """
    Live data describing the joining member and the guild.

    ``avatar`` is fetched by the caller; the renderer never downloads.
    """

    mention: str
    username: str
    discriminated_name: str
    nickname: str
    avatar_url: str
    guild_name: str
    member_count: int
    avatar: Optional[Image.Image] = None


@dataclass(frozen=True, slots=True)
class WelcomeMessage:
    """Outgoing payload handed to the messaging transport."""

    content: str
    image: Optional[bytes] = None
    filename: str = WELCOME_IMAGE_FILENAME

    @property
    def has_image(self) -> bool:
        return self.image is not None
