"""API request and response schemas.

This module contains Pydantic models for API request validation
and response serialization. Field names are camelCase on the wire.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class APIModel(BaseModel):
    """Base schema accepting both field names and their camelCase aliases."""
    model_config = ConfigDict(populate_by_name=True)


class ShortenRequest(APIModel):
    """Request schema for shortening a URL."""
    # Left untyped so malformed URLs reach the service and map to 400
    long_url: Any = Field(..., alias="longUrl")
    expires_in: Optional[int] = Field(None, alias="expiresIn")
    alias: Optional[str] = None


class ShortenResponse(APIModel):
    """Response schema for a shortened URL."""
    success: bool = True
    short_url: str = Field(..., alias="shortUrl")
    short_code: str = Field(..., alias="shortCode")
    long_url: str = Field(..., alias="longUrl")
    expires_in: Optional[int] = Field(None, alias="expiresIn")
    custom_alias: bool = Field(False, alias="customAlias")


class URLStats(APIModel):
    """Usage statistics of a single short code."""
    short_code: str = Field(..., alias="shortCode")
    long_url: str = Field(..., alias="longUrl")
    clicks: int
    created_at: datetime = Field(..., alias="createdAt")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    last_accessed: Optional[datetime] = Field(None, alias="lastAccessed")
    is_custom_alias: bool = Field(..., alias="isCustomAlias")


class StatsResponse(APIModel):
    """Response schema for URL statistics."""
    success: bool = True
    stats: URLStats


class ErrorResponse(BaseModel):
    """Response schema for errors."""
    detail: str
