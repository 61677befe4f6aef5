"""Authentication schemas for bearer JWT tokens."""

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, EmailStr, Field


class JWTClaims(BaseModel):
    """JWT claims extracted from an access token."""

    sub: str = Field(..., description="Subject (user ID)")
    email: Optional[EmailStr] = Field(None, description="User email")
    role: str = Field(default="authenticated", description="User role")
    exp: int = Field(..., description="Expiration timestamp")
    iat: int = Field(..., description="Issued at timestamp")
    iss: Optional[str] = Field(None, description="Token issuer")

    aud: Optional[Union[str, list[str]]] = Field(None, description="Audience")
    app_metadata: Optional[Dict[str, Any]] = Field(None, description="Application metadata")
    user_metadata: Optional[Dict[str, Any]] = Field(None, description="User metadata")
    session_id: Optional[str] = Field(None, description="Session ID")


class CurrentUser(BaseModel):
    """Current authenticated user information."""

    id: str = Field(..., description="Authenticated user ID, owner of the knowledge graph")
    email: Optional[EmailStr] = Field(None, description="User email")
    role: str = Field(default="user", description="User role")

    full_name: Optional[str] = Field(None, description="User's full name")
    app_metadata: Optional[Dict[str, Any]] = Field(None, description="Application metadata")
    user_metadata: Optional[Dict[str, Any]] = Field(None, description="User metadata")


__all__ = [
    "JWTClaims",
    "CurrentUser",
]
