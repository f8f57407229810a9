"""Optional cloud backup of save slots over an async key-value store."""
