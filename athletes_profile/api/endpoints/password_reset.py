"""
Password reset endpoints.

POST /request always reports success for a well-formed email that the platform
accepted; it never reveals whether an account exists.
"""

import logging
from fastapi import APIRouter, Depends

from athletes_profile.core.context import ClientContext
from athletes_profile.core.deps import get_client_context
from athletes_profile.schemas.password_reset import ResetCodeRequest, ResetConfirmRequest, ResetView

router = APIRouter(prefix="/password-reset", tags=["Password Reset"])
logger = logging.getLogger(__name__)


@router.get("", response_model=ResetView)
async def get_password_reset(context: ClientContext = Depends(get_client_context)):
    return ResetView(state=context.password_reset.state)


@router.post("/request", response_model=ResetView)
async def request_reset_code(
    request: ResetCodeRequest,
    context: ClientContext = Depends(get_client_context),
):
    """Send a recovery code and link to the given email."""
    state = await context.password_reset.request_code(request.email)
    return ResetView(state=state)


@router.post("/toggle-full-token", response_model=ResetView)
async def toggle_full_token(context: ClientContext = Depends(get_client_context)):
    """Switch between entering the 6-digit code and pasting the full reset token."""
    state = await context.password_reset.toggle_full_token()
    return ResetView(state=state)


@router.post("/confirm", response_model=ResetView)
async def confirm_reset(
    request: ResetConfirmRequest,
    context: ClientContext = Depends(get_client_context),
):
    """Set the new password using the code, full token or emailed link."""
    state = await context.password_reset.confirm(request.code, request.new_password, request.confirm_password)
    return ResetView(state=state)


@router.post("/cancel", response_model=ResetView)
async def cancel_reset(context: ClientContext = Depends(get_client_context)):
    state = await context.password_reset.cancel()
    return ResetView(state=state)
