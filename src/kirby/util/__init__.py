"""
Utility functions and helpers for Kirby.

- **logger.py**: Centralized logging with colored console output through
  prompt_toolkit and rotating log files. Quiets Discord, aiosqlite and Pillow.

- **asset_cache.py**: Loads welcome backgrounds and fonts once at startup into
  a read-only cache.

- **discord_utils.py**: Stateless Discord helpers for permission checks,
  building welcome contexts from members and sending rendered welcomes.

- **image_utils.py**: Avatar download and circular cropping with Pillow.
"""
