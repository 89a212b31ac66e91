"""Shared helpers for addresses and tags."""
