"""Rendering and delivery of welcome messages."""
