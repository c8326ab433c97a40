"""
Pydantic schemas package.
"""

from athletes_profile.schemas.auth import AuthChangeEvent, AuthUser, OtpType, Session, SignUpResult
from athletes_profile.schemas.registration import FileUpload, RegistrationDraft, Role, SignupMetadata

__all__ = [
    "AuthChangeEvent",
    "AuthUser",
    "OtpType",
    "Session",
    "SignUpResult",
    "FileUpload",
    "RegistrationDraft",
    "Role",
    "SignupMetadata",
]
