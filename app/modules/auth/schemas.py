from datetime import datetime
from typing import Literal

from pydantic import BaseModel, EmailStr, Field


class SendLinkRequest(BaseModel):
    email: EmailStr = Field(..., max_length=320)
    name: str | None = Field(default=None, max_length=100)
    mode: Literal["login", "register"]


class SendLinkResponse(BaseModel):
    success: bool = True
    message: str = "Verification email sent. Please check your inbox."


class VerifyRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=512)


class UserMeResponse(BaseModel):
    id: str
    email: EmailStr
    name: str | None
    email_verified_at: datetime | None
    created_at: datetime | None


class VerifyResponse(BaseModel):
    success: bool = True
    user: UserMeResponse


class StatusResponse(BaseModel):
    status: str = "ok"
