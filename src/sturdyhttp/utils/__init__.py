"""Utility helpers for sturdyhttp."""

from sturdyhttp.utils.sanitization import sanitize_url

__all__ = ["sanitize_url"]
