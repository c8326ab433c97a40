"""
Registration endpoints.

Every endpoint returns the flow's current state; validation and platform errors
are carried in the state rather than as HTTP errors.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from athletes_profile.core.context import ClientContext
from athletes_profile.core.deps import get_client_context
from athletes_profile.schemas.registration import (
    FileUpload,
    RegistrationDraft,
    RegistrationView,
    Role,
    VerifyCodeRequest,
)

router = APIRouter(prefix="/registration", tags=["Registration"])
logger = logging.getLogger(__name__)


async def _read_upload(upload: Optional[UploadFile]) -> Optional[FileUpload]:
    if upload is None or not upload.filename:
        return None
    content = await upload.read()
    return FileUpload(
        filename=upload.filename,
        content_type=upload.content_type or "application/octet-stream",
        content=content,
    )


@router.get("", response_model=RegistrationView)
async def get_registration(context: ClientContext = Depends(get_client_context)):
    return RegistrationView(state=context.registration.state)


@router.post("", response_model=RegistrationView)
async def submit_registration(
    email: str = Form(""),
    password: str = Form(""),
    confirm_password: str = Form(""),
    full_name: str = Form(""),
    student_id: str = Form(""),
    role: Role = Form(Role.STUDENT),
    phone: str = Form(""),
    course: str = Form(""),
    year_level: str = Form(""),
    sport: str = Form(""),
    position: str = Form(""),
    department: str = Form(""),
    title: str = Form(""),
    id_picture: Optional[UploadFile] = File(None),
    profile_image: Optional[UploadFile] = File(None),
    context: ClientContext = Depends(get_client_context),
):
    """
    Submit the sign-up form.

    Creates the account, writes the profile details and uploads (or stages) the
    ID picture, then moves to the code step. On any precondition failure or
    platform rejection the flow stays on the form with an error.
    """
    draft = RegistrationDraft(
        email=email,
        password=password,
        confirm_password=confirm_password,
        full_name=full_name,
        student_id=student_id,
        role=role,
        phone=phone,
        course=course,
        year_level=year_level,
        sport=sport,
        position=position,
        department=department,
        title=title,
        id_picture=await _read_upload(id_picture),
        profile_image=await _read_upload(profile_image),
    )
    state = await context.registration.submit(draft)
    return RegistrationView(state=state)


@router.post("/verify", response_model=RegistrationView)
async def verify_registration(
    request: VerifyCodeRequest,
    context: ClientContext = Depends(get_client_context),
):
    """Confirm the account with the 6-digit code from the email."""
    state = await context.registration.verify(request.code, email=request.email)
    return RegistrationView(state=state)


@router.post("/cancel", response_model=RegistrationView)
async def cancel_registration(context: ClientContext = Depends(get_client_context)):
    state = await context.registration.cancel()
    return RegistrationView(state=state)
