from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class CredentialsIn(BaseModel):
    """Username/password body for register and login.

    Unknown fields (such as an embedded ``pow`` solution) are ignored.
    """

    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=1024)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value


class RegisteredUserOut(BaseModel):
    id: int
    username: str


class LoginOut(BaseModel):
    status: str = "ok"
    message: str = "logged in"
    username: str


class ProfileUserOut(BaseModel):
    id: int
    username: str
    created: str


class ProfileOut(BaseModel):
    status: str = "ok"
    user: ProfileUserOut


class PowChallengeOut(BaseModel):
    challenge: str
    difficulty: int
    ttl_secs: int
    token: str
