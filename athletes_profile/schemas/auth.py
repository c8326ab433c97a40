"""
Pydantic schemas for platform sessions and the sign-in surface.
"""

import enum
import time
from typing import Any, Dict, Optional

from pydantic import BaseModel, EmailStr, Field


class AuthChangeEvent(str, enum.Enum):
    """Session-change events pushed by the platform client to its subscribers"""
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


class OtpType(str, enum.Enum):
    """Purpose of a one-time verification code"""
    SIGNUP = "signup"
    RECOVERY = "recovery"


class AuthUser(BaseModel):
    """Identity issued by the platform's auth service."""
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = Field(default_factory=dict)
    email_confirmed_at: Optional[str] = None

    @property
    def role(self) -> str:
        return str(self.user_metadata.get("role") or "student")


class Session(BaseModel):
    """Short-lived access token plus the refresh token that renews it."""
    access_token: str
    refresh_token: str = ""
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    expires_at: Optional[int] = None
    user: AuthUser

    def is_expired(self, margin_seconds: int = 10) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= int(time.time()) + margin_seconds


class SignUpResult(BaseModel):
    """Outcome of account creation; session is only set when the platform auto-signs-in."""
    user: Optional[AuthUser] = None
    session: Optional[Session] = None


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)
    remember_me: bool = False


class DeepLinkRequest(BaseModel):
    """URL (or bare fragment) the front-end was loaded with."""
    fragment: str


class DeepLinkResponse(BaseModel):
    consumed: bool
    type: Optional[OtpType] = None
    strip_fragment: bool = False


class IdentityResponse(BaseModel):
    """Current identity as seen by the Session Manager."""
    authenticated: bool
    user_id: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    remember_me: bool = False
