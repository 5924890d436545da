"""Flush-only kernel services.  Callers own commit/rollback."""
