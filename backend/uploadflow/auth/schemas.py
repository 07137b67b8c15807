"""Authentication API response schemas"""

from typing import Any, Dict

from pydantic import BaseModel, Field


class TokenResponse(BaseModel):
    """Returned by /oauth/code when no return URL was chosen"""
    token: str = Field(..., description="Identity Provider access token")


class MeResponse(BaseModel):
    user: Dict[str, Any] = Field(..., description="Profile as returned by the Identity Provider")
