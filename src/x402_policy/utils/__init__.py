"""Shared helpers (policy file I/O, logging setup)."""
