"""Shared database, cache, models and repositories."""
