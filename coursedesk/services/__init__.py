"""Persistence, storage and logging services."""
