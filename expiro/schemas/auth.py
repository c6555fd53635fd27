"""Pydantic schemas for caller identity."""

from pydantic import BaseModel, Field


class Identity(BaseModel):
    """Caller identity supplied by the identity provider."""

    user_id: str = Field(..., min_length=1, max_length=64)
    email: str | None = None


class TokenData(BaseModel):
    """JWT token payload data."""

    sub: str | None = None
    email: str | None = None
