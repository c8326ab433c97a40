"""
Pydantic schemas for the two-step password reset.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field


class EmailEntryState(BaseModel):
    kind: Literal["email_entry"] = "email_entry"
    email: str = ""
    error: Optional[str] = None


class CodeSentState(BaseModel):
    kind: Literal["code_sent"] = "code_sent"
    email: str = ""
    code: str = ""
    use_full_token: bool = False
    error: Optional[str] = None
    notice: Optional[str] = None


class ResetVerifyingState(BaseModel):
    kind: Literal["verifying"] = "verifying"
    email: str = ""
    code: str = ""
    use_full_token: bool = False


class PasswordResetState(BaseModel):
    kind: Literal["reset"] = "reset"
    notice: str = "Password reset successfully! You can now sign in with your new password."


ResetState = Annotated[
    Union[EmailEntryState, CodeSentState, ResetVerifyingState, PasswordResetState],
    Field(discriminator="kind"),
]


class ResetCodeRequest(BaseModel):
    email: str


class ResetConfirmRequest(BaseModel):
    """Code or full token, plus the new password and its confirmation."""
    code: str
    new_password: str = Field(repr=False)
    confirm_password: str = Field(repr=False)


class ResetView(BaseModel):
    state: ResetState
