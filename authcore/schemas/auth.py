"""Payloads returned to authentication controllers."""

from datetime import datetime

from pydantic import BaseModel


class UserOut(BaseModel):
    id: int
    email: str
    name: str | None = None
    role: str = "user"
    created_at: datetime | None = None


class AuthResult(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds until access token expires
    user: UserOut


class AccessClaims(BaseModel):
    user_id: int
    issued_at: datetime
    expires_at: datetime
