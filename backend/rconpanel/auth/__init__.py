"""Caller authentication for the panel API."""

from .validation import Validate

__all__ = ["Validate"]
