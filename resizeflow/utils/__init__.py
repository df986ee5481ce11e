"""Shared helpers for resizeflow."""
