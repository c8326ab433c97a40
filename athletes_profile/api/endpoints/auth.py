"""
Session endpoints for one client context.

- POST /bootstrap: apply the remember-me policy to any persisted session
- POST /sign-in: password sign-in, optionally remembered
- POST /sign-out: forget the preference, then revoke the session
- GET /me: current identity
- POST /deep-link: consume the fragment of an emailed confirmation/recovery link
"""

import logging
from fastapi import APIRouter, Depends, HTTPException, status

from athletes_profile.core.context import ClientContext
from athletes_profile.core.deps import get_client_context, get_identity_context
from athletes_profile.core.platform import PlatformError
from athletes_profile.schemas.auth import (
    DeepLinkRequest,
    DeepLinkResponse,
    IdentityResponse,
    OtpType,
    SignInRequest,
)

router = APIRouter(prefix="/auth", tags=["Authentication"])
logger = logging.getLogger(__name__)


def _identity(context: ClientContext) -> IdentityResponse:
    user = context.sessions.user
    if user is None:
        return IdentityResponse(authenticated=False, remember_me=context.policy.remember())
    return IdentityResponse(
        authenticated=True,
        user_id=user.id,
        email=user.email,
        role=user.role,
        remember_me=context.policy.remember(),
    )


@router.post("/bootstrap", response_model=IdentityResponse)
async def bootstrap(context: ClientContext = Depends(get_client_context)):
    """
    Run once when the front-end starts.

    A persisted session is kept only if the user chose "remember me" at sign-in;
    otherwise it is revoked and the caller starts signed out.
    """
    try:
        await context.ensure_bootstrapped()
    except PlatformError as e:
        logger.error(f"Session bootstrap failed for client {context.client_id}: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=e.message
        )
    return _identity(context)


@router.post("/sign-in", response_model=IdentityResponse)
async def sign_in(
    request: SignInRequest,
    context: ClientContext = Depends(get_client_context),
):
    """Sign in with email and password. The platform's error message is returned verbatim."""
    try:
        await context.sessions.sign_in(request.email, request.password, remember_me=request.remember_me)
    except PlatformError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message
        )
    context.bootstrapped = True
    return _identity(context)


@router.post("/sign-out", response_model=IdentityResponse)
async def sign_out(context: ClientContext = Depends(get_client_context)):
    try:
        await context.sessions.sign_out()
    except PlatformError as e:
        logger.error(f"Sign-out failed for client {context.client_id}: {e.message}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=e.message
        )
    return _identity(context)


@router.get("/me", response_model=IdentityResponse)
async def me(context: ClientContext = Depends(get_identity_context)):
    return _identity(context)


@router.post("/deep-link", response_model=DeepLinkResponse)
async def consume_deep_link(
    request: DeepLinkRequest,
    context: ClientContext = Depends(get_client_context),
):
    """
    Hand the URL fragment the front-end was opened with to the matching flow.

    Each link is consumed at most once per client; the response tells the
    front-end to strip the fragment so a re-render cannot trigger it again.
    No platform call is made here.
    """
    link = context.deep_links.consume(request.fragment)
    if link is None:
        return DeepLinkResponse(consumed=False)

    if link.type == OtpType.SIGNUP:
        applied = await context.registration.apply_link(link)
    else:
        applied = await context.password_reset.apply_link(link)

    return DeepLinkResponse(consumed=True, type=link.type, strip_fragment=applied)
