"""Integrity checks and repair for persisted game state."""
