"""
Pydantic schemas for account registration and email-code confirmation.
"""

import enum
from typing import Annotated, Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field


class Role(str, enum.Enum):
    ADMIN = "admin"
    STUDENT = "student"


class FileUpload(BaseModel):
    """File picked in the form, held in memory until it can be uploaded."""
    filename: str
    content_type: str = "application/octet-stream"
    content: bytes = Field(repr=False)

    @property
    def extension(self) -> str:
        return self.filename.rsplit(".", 1)[-1].lower() if "." in self.filename else "bin"


class SignupMetadata(BaseModel):
    """
    Metadata attached to the account at creation.

    Every optional field defaults to an empty string, is_verified to False;
    admin verification is a separate gate from email confirmation.
    """
    full_name: str = ""
    role: Role = Role.STUDENT
    student_id: str = ""
    phone: str = ""
    course: str = ""
    year_level: str = ""
    sport: str = ""
    position: str = ""
    department: str = ""
    title: str = ""
    id_picture_url: str = ""
    is_verified: bool = False


class RegistrationDraft(BaseModel):
    """The pending registration, kept client-side until the code is confirmed."""
    full_name: str = ""
    student_id: str = ""
    email: str = ""
    phone: str = ""
    course: str = ""
    year_level: str = ""
    sport: str = ""
    position: str = ""
    department: str = ""
    title: str = ""
    role: Role = Role.STUDENT
    password: str = Field(default="", repr=False)
    confirm_password: str = Field(default="", repr=False)
    id_picture: Optional[FileUpload] = None
    profile_image: Optional[FileUpload] = None

    def metadata(self) -> SignupMetadata:
        return SignupMetadata(
            full_name=self.full_name,
            role=self.role,
            student_id=self.student_id.strip(),
            phone=self.phone,
            course=self.course,
            year_level=self.year_level,
            sport=self.sport,
            position=self.position,
            department=self.department,
            title=self.title,
        )

    def profile_columns(self) -> Dict[str, Any]:
        """Extended columns written onto the users row; blanks become NULL."""
        meta = self.metadata()
        columns: Dict[str, Any] = {
            field: getattr(meta, field) or None
            for field in ("student_id", "phone", "course", "year_level", "sport", "position", "department", "title")
        }
        columns["id_picture_url"] = None
        columns["is_verified"] = False
        return columns


class RegistrationFormState(BaseModel):
    kind: Literal["form"] = "form"
    error: Optional[str] = None


class RegistrationSubmittingState(BaseModel):
    kind: Literal["submitting"] = "submitting"
    email: str


class AwaitingCodeState(BaseModel):
    kind: Literal["awaiting_code"] = "awaiting_code"
    email: str = ""
    code: str = ""
    error: Optional[str] = None
    notice: Optional[str] = None


class VerifyingCodeState(BaseModel):
    kind: Literal["verifying"] = "verifying"
    email: str
    code: str


class RegistrationConfirmedState(BaseModel):
    kind: Literal["confirmed"] = "confirmed"
    notice: str = "Email confirmed successfully! You can now sign in."


RegistrationState = Annotated[
    Union[
        RegistrationFormState,
        RegistrationSubmittingState,
        AwaitingCodeState,
        VerifyingCodeState,
        RegistrationConfirmedState,
    ],
    Field(discriminator="kind"),
]


class VerifyCodeRequest(BaseModel):
    """Code typed (or pre-filled) on the confirmation step."""
    code: str
    email: Optional[str] = None


class RegistrationView(BaseModel):
    state: RegistrationState
