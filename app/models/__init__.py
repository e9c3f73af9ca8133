"""
Data models for the URL shortener application.

This module imports and exports all SQLModel models used in the application.
"""

# First import SQLModel itself to ensure metadata is initialized
from sqlmodel import SQLModel

from app.models.url import (
    ShortURL,
    ShortURLBase,
    ShortURLCreate,
    ShortURLStats,
    ShortenResult,
)

__all__ = [
    "SQLModel",
    "ShortURL",
    "ShortURLBase",
    "ShortURLCreate",
    "ShortURLStats",
    "ShortenResult",
]
