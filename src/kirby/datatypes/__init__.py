"""Plain data types shared across Kirby: guild identifiers and welcome records."""
