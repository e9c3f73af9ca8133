"""Core module for the URL shortener application."""

from app.core.config import settings

__all__ = ["settings"]
