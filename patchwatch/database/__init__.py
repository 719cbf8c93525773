"""Data models and the SQLite schema used by the local store."""
