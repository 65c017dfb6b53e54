"""
Kirby - Welcome Messages for Discord Servers

Kirby greets members as they join a server with a text message or a rendered
welcome card, configured per server through slash commands.

Core Components:

- **Welcome Store**: Per-guild welcome settings in SQLite behind a bounded
  aiosqlite connection pool, with default records and atomic resets
- **Renderer**: Placeholder substitution and welcome card composition over
  backgrounds and fonts cached at startup
- **Cogs**: /welcome commands and the lifecycle listeners that keep the store
  in step with the servers the bot is in

Usage:
    from kirby.main import main
    main()
"""
