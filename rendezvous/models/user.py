"""
user.py — Pydantic schemas for user-related request / response bodies.

Separation of concerns:
  UserCreate   — what the client sends to register
  UserOut      — what the API returns (never includes hashed_password)
  Token        — JWT response from /auth/login and /auth/register
"""

from datetime import datetime

from pydantic import BaseModel, Field


class UserCreate(BaseModel):
    """Payload for POST /auth/register."""
    username: str = Field(min_length=3, max_length=32, pattern=r"^[A-Za-z0-9_.-]+$")
    password: str = Field(min_length=8, max_length=128)


class UserOut(BaseModel):
    """Safe user representation — no secrets."""
    id: str
    username: str
    created_at: datetime


class Token(BaseModel):
    """Response body for successful login / register."""
    access_token: str
    token_type: str = "bearer"
    user: UserOut


class LoginRequest(BaseModel):
    """Payload for POST /auth/login."""
    username: str
    password: str
