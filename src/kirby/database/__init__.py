"""
Database package for Kirby.

Public API:
    - ConnectionPool: Bounded aiosqlite pool with explicit transactions
    - SchemaManager: Creates the guild_welcome and schema_version tables
"""
