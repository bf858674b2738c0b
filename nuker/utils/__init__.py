"""Shared helpers: duration parsing and logging setup."""
