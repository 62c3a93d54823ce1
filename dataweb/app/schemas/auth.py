from typing import Any

from pydantic import BaseModel


class AuthRequest(BaseModel):
    # Presence and length are checked by the auth service so every failure
    # surfaces as the same validation error shape
    username: Any = None
    password: Any = None


class PublicUser(BaseModel):
    id: int
    username: str


class AuthResponse(BaseModel):
    message: str
    token: str
    user: PublicUser
