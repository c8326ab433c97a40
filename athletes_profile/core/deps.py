"""
FastAPI dependencies for client contexts, identity and roles.
"""

import logging
import re
import uuid
from typing import AsyncIterator, Optional

from fastapi import Depends, Header, HTTPException, Response, status

from athletes_profile.core.context import ClientContext, ClientRegistry, registry
from athletes_profile.core.logging_config import client_id_var
from athletes_profile.schemas.auth import AuthUser
from athletes_profile.schemas.registration import Role

logger = logging.getLogger(__name__)

CLIENT_ID_HEADER = "X-Client-Id"
CLIENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def get_registry() -> ClientRegistry:
    return registry


def resolve_client_id(x_client_id: Optional[str]) -> Optional[str]:
    """The header value when it is a usable client id, otherwise None."""
    client_id = (x_client_id or "").strip()
    if not client_id:
        return None
    if not CLIENT_ID_PATTERN.match(client_id):
        logger.warning("Ignoring malformed X-Client-Id header")
        return None
    return client_id


async def get_client_context(
    response: Response,
    x_client_id: Optional[str] = Header(default=None),
    client_registry: ClientRegistry = Depends(get_registry),
) -> ClientContext:
    """
    Resolve the caller's client context from the X-Client-Id header.

    A new id is issued (and echoed back) when the header is missing or malformed,
    so the front-end can keep using it on subsequent requests.
    """
    client_id = resolve_client_id(x_client_id) or str(uuid.uuid4())
    client_id_var.set(client_id)
    response.headers[CLIENT_ID_HEADER] = client_id
    return client_registry.get(client_id)


async def get_identity_context(
    response: Response,
    x_client_id: Optional[str] = Header(default=None),
    client_registry: ClientRegistry = Depends(get_registry),
) -> AsyncIterator[ClientContext]:
    """
    Context for read-only identity checks.

    Without a usable X-Client-Id the caller has no context yet, so the answer
    comes from a fresh one that is never registered and no id is issued.
    """
    client_id = resolve_client_id(x_client_id)
    if client_id is not None:
        client_id_var.set(client_id)
        response.headers[CLIENT_ID_HEADER] = client_id
        yield client_registry.get(client_id)
        return

    context = client_registry.build(str(uuid.uuid4()))
    try:
        yield context
    finally:
        context.close()


async def get_current_user(
    context: ClientContext = Depends(get_client_context),
) -> AuthUser:
    """
    Current signed-in user of the client context.

    Raises:
        HTTPException 401: nobody is signed in
    """
    await context.ensure_bootstrapped()
    user = context.sessions.user
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user


async def get_admin_user(
    user: AuthUser = Depends(get_current_user),
) -> AuthUser:
    """
    Raises:
        HTTPException 403: signed-in user is not an administrator
    """
    if user.role.lower() != Role.ADMIN.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required"
        )
    return user
