"""Shared utilities: configuration loading and build tool helpers."""
