"""Per-guild welcome settings persistence."""
