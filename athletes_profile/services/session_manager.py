"""
Session Manager: owns the current session and identity of one client context.

The platform keeps sessions across restarts on its own. This manager layers a
"remember me" policy on top: a session found at bootstrap is only adopted when
the user opted in at sign-in; otherwise it is revoked.
"""

import logging
from typing import Optional

from athletes_profile.core.platform import PlatformClient
from athletes_profile.core.preferences import SessionPolicyStore
from athletes_profile.schemas.auth import AuthChangeEvent, AuthUser, Session
from athletes_profile.services.profiles import ProfileService

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Tracks the signed-in user and keeps it in sync with platform session events.

    The subscription to the platform is opened on construction and lives until close().
    """

    def __init__(self, platform: PlatformClient, policy: SessionPolicyStore, profiles: ProfileService):
        self.platform = platform
        self.policy = policy
        self.profiles = profiles
        self.session: Optional[Session] = None
        self.user: Optional[AuthUser] = None
        self.loading = True
        self._subscription = platform.auth.on_auth_state_change(self._on_auth_state_change)

    def _on_auth_state_change(self, event: AuthChangeEvent, session: Optional[Session]) -> None:
        self.session = session
        self.user = session.user if session else None
        self.loading = False
        logger.debug(f"Auth state change: {event.value}")

    async def bootstrap(self) -> Optional[AuthUser]:
        """
        Adopt the persisted session, or revoke it when the user did not ask to be remembered.

        Raises:
            PlatformError: if revoking a non-remembered session fails
        """
        session = await self.platform.auth.get_session()

        if session and not self.policy.remember():
            logger.info("Discarding persisted session: remember me not set")
            await self.platform.auth.sign_out()
            self.policy.clear_remember()
            self.session = None
            self.user = None
            self.loading = False
            return None

        self.session = session
        self.user = session.user if session else None
        self.loading = False
        return self.user

    async def sign_in(self, email: str, password: str, remember_me: bool = False) -> AuthUser:
        """
        Sign in with email and password.

        The remember preference is only written once the platform accepted the credentials.

        Raises:
            PlatformError: if the credentials are rejected
        """
        session = await self.platform.auth.sign_in_with_password(email, password)
        self.policy.set_remember(remember_me)
        self.session = session
        self.user = session.user
        logger.info(f"User signed in: {session.user.id} (remember me: {remember_me})")

        await self.profiles.upload_staged_id_picture(session.user.id)
        return session.user

    async def sign_out(self) -> None:
        """
        Sign out: the preference is cleared before the session is revoked, so an
        interrupted sign-out still loses the session at the next bootstrap.
        """
        self.policy.clear_remember()
        await self.platform.auth.sign_out()
        self.session = None
        self.user = None
        logger.info("User signed out")

    def close(self) -> None:
        self._subscription.unsubscribe()
