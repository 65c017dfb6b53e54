"""Repository layer for guild welcome database access."""
from kirby.settings.repositories.guild_welcome_repo import GuildWelcomeRepository, GuildWelcomeRow

__all__ = [
    "GuildWelcomeRepository",
    "GuildWelcomeRow",
]
