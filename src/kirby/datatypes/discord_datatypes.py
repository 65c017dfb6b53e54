"""
Type-safe wrapper for Discord guild identifiers.

Guild IDs are persisted as text, so the wrapper keeps the string form and only
converts to an integer when talking to the Discord API.
"""

from __future__ import annotations

from typing import Union

import discord


class GuildID:
    """
    Opaque, stable identifier of a guild.

    Discord snowflakes are 64-bit integers, but the welcome table stores them
    as TEXT. This class keeps one canonical string form so ``GuildID(123)``
    and ``GuildID("123")`` compare and hash equal.

    Example:
        >>> gid = GuildID(123456789012345678)
        >>> str(gid)
        '123456789012345678'
        >>> gid == "123456789012345678"
        True
    """

    __slots__ = ("_value",)

    def __init__(self, value: Union[str, int, "GuildID"]) -> None:
        """
        Initialize a GuildID from a string, int, or another GuildID.

        Raises:
            ValueError: If the value is empty or of an unsupported type.
        """
        if isinstance(value, GuildID):
            self._value = value._value
        elif isinstance(value, bool):
            raise ValueError(f"Cannot create GuildID from bool: {value}")
        elif isinstance(value, int):
            self._value = str(value)
        elif isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValueError("GuildID cannot be empty")
            self._value = stripped
        else:
            raise ValueError(f"Cannot create GuildID from {type(value).__name__}: {value}")

    @classmethod
    def from_guild(cls, guild: discord.Guild) -> "GuildID":
        """Create a GuildID from a Discord Guild object."""
        return cls(guild.id)

    def to_int(self) -> int:
        """
        Convert to an integer for Discord API calls.

        Raises:
            ValueError: If the stored identifier is not numeric.
        """
        return int(self._value)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"GuildID({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, GuildID):
            return self._value == other._value
        if isinstance(other, str):
            return self._value == other
        if isinstance(other, int) and not isinstance(other, bool):
            return self._value == str(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)
