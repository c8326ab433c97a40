"""
Password reset flow: email_entry -> code_sent -> verifying -> reset.

The new password is applied through the first applicable credential:
  1. the recovery link this client was opened with, when its short code could
     not be derived (it is still held, unconsumed, by the flow)
  2. a cached recovery link token whose short code matches the entered code
  3. a full token the user pasted, verified against the email first
  4. the bare code: a direct update that only succeeds if the platform already
     holds a recovery session; on rejection the user is asked for the full
     token or the emailed link instead

The client never learns whether an email is registered.
"""

import enum
import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from athletes_profile.core.config import settings
from athletes_profile.core.deep_link import DeepLink, derive_short_code
from athletes_profile.core.platform import PlatformClient, PlatformError
from athletes_profile.core.preferences import SessionPolicyStore
from athletes_profile.schemas.auth import OtpType
from athletes_profile.schemas.password_reset import (
    CodeSentState,
    EmailEntryState,
    PasswordResetState,
    ResetState,
    ResetVerifyingState,
)

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
MIN_FULL_TOKEN_LENGTH = 10
CODE_PATTERN = re.compile(r"^\d{6}$")

NOTICE_CODE_SENT = "Password reset code sent to your email! Check your inbox for the 6-digit code."
ERROR_EMAIL_REQUIRED = "Email is required"
ERROR_INVALID_CODE = "Please enter a valid 6-digit code"
ERROR_INVALID_TOKEN = "Please enter a valid reset token"
ERROR_PASSWORD_LENGTH = f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
ERROR_PASSWORD_MISMATCH = "Passwords do not match"
ERROR_CODE_MISMATCH = "Invalid code. Please check the code from your email."
ERROR_USE_FULL_TOKEN = (
    "Please enter the full reset token from your email, "
    "or click the reset link to activate the session."
)


class ResetStrategy(str, enum.Enum):
    LINK_TOKEN = "link_token"
    CACHED_TOKEN = "cached_token"
    FULL_TOKEN = "full_token"
    BARE_CODE = "bare_code"


# Effects

@dataclass(frozen=True)
class SendResetEmail:
    email: str


@dataclass(frozen=True)
class ApplyNewPassword:
    strategy: ResetStrategy
    email: str
    code: str
    new_password: str
    token: Optional[str] = None


@dataclass(frozen=True)
class CacheLinkToken:
    token: str


@dataclass(frozen=True)
class ClearResetState:
    pass


Effect = Union[SendResetEmail, ApplyNewPassword, CacheLinkToken, ClearResetState]


@dataclass(frozen=True)
class Transition:
    state: ResetState
    effects: Tuple[Effect, ...] = ()


# Transitions

def request_code(state: ResetState, email: str) -> Transition:
    if not isinstance(state, (EmailEntryState, CodeSentState, PasswordResetState)):
        return Transition(state)

    email = (email or "").strip()
    if not email:
        return Transition(EmailEntryState(error=ERROR_EMAIL_REQUIRED))
    return Transition(EmailEntryState(email=email), (SendResetEmail(email),))


def code_requested(state: ResetState) -> Transition:
    """Any non-error response: the platform does not say whether the email exists."""
    if not isinstance(state, EmailEntryState):
        return Transition(state)
    return Transition(CodeSentState(email=state.email, notice=NOTICE_CODE_SENT))


def code_request_failed(state: ResetState, message: str) -> Transition:
    if not isinstance(state, EmailEntryState):
        return Transition(state)
    return Transition(EmailEntryState(email=state.email, error=message))


def toggle_full_token(state: ResetState) -> Transition:
    if not isinstance(state, CodeSentState):
        return Transition(state)
    return Transition(state.model_copy(update={"use_full_token": not state.use_full_token, "code": "", "error": None}))


def validate_reset_input(code: str, use_full_token: bool, new_password: str, confirm_password: str) -> Optional[str]:
    if use_full_token:
        if len(code) < MIN_FULL_TOKEN_LENGTH:
            return ERROR_INVALID_TOKEN
    elif not CODE_PATTERN.match(code):
        return ERROR_INVALID_CODE
    if len(new_password or "") < MIN_PASSWORD_LENGTH:
        return ERROR_PASSWORD_LENGTH
    if new_password != confirm_password:
        return ERROR_PASSWORD_MISMATCH
    return None


def choose_strategy(
    code: str,
    use_full_token: bool,
    link_token: Optional[str],
    cached_token: Optional[str],
) -> Tuple[Optional[ResetStrategy], Optional[str]]:
    """
    Pick how the new password will be authorised.

    Returns:
        (strategy, token); strategy is None when a cached link exists but its
        short code does not match the entered code.
    """
    if link_token:
        return ResetStrategy.LINK_TOKEN, link_token
    if cached_token:
        if derive_short_code(cached_token) == code:
            return ResetStrategy.CACHED_TOKEN, cached_token
        return None, None
    if use_full_token and len(code) > 6:
        return ResetStrategy.FULL_TOKEN, code
    return ResetStrategy.BARE_CODE, None


def begin_reset(
    state: ResetState,
    code: str,
    new_password: str,
    confirm_password: str,
    link_token: Optional[str] = None,
    cached_token: Optional[str] = None,
) -> Transition:
    if not isinstance(state, CodeSentState):
        return Transition(state)

    code = (code or "").strip()
    error = validate_reset_input(code, state.use_full_token, new_password, confirm_password)
    if error:
        return Transition(state.model_copy(update={"code": code, "error": error, "notice": None}))

    strategy, token = choose_strategy(code, state.use_full_token, link_token, cached_token)
    if strategy is None:
        return Transition(state.model_copy(update={"code": code, "error": ERROR_CODE_MISMATCH, "notice": None}))

    return Transition(
        ResetVerifyingState(email=state.email, code=code, use_full_token=state.use_full_token),
        (ApplyNewPassword(strategy, state.email, code, new_password, token),),
    )


def reset_failed(state: ResetState, message: str) -> Transition:
    if not isinstance(state, ResetVerifyingState):
        return Transition(state)
    return Transition(CodeSentState(
        email=state.email,
        code=state.code,
        use_full_token=state.use_full_token,
        error=message,
    ))


def reset_succeeded(state: ResetState) -> Transition:
    if not isinstance(state, ResetVerifyingState):
        return Transition(state)
    return Transition(PasswordResetState(), (ClearResetState(),))


def apply_recovery_link(state: ResetState, link: DeepLink) -> Transition:
    """Pre-fill the code step from an emailed recovery link."""
    if link.type != OtpType.RECOVERY:
        return Transition(state)
    code = derive_short_code(link.access_token)
    if code is None:
        return Transition(state)

    email = state.email if isinstance(state, (EmailEntryState, CodeSentState, ResetVerifyingState)) else ""
    return Transition(CodeSentState(email=email, code=code), (CacheLinkToken(link.access_token),))


def cancel(state: ResetState) -> Transition:
    return Transition(EmailEntryState())


# Driver

class PasswordResetFlow:
    """One password reset flow per client context."""

    def __init__(self, platform: PlatformClient, policy: SessionPolicyStore):
        self.platform = platform
        self.policy = policy
        self.state: ResetState = EmailEntryState()
        # Recovery link this client was opened with that could not be turned into a short code
        self.link_token: Optional[str] = None

    async def request_code(self, email: str) -> ResetState:
        await self._apply(request_code(self.state, email))
        return self.state

    async def toggle_full_token(self) -> ResetState:
        await self._apply(toggle_full_token(self.state))
        return self.state

    async def confirm(self, code: str, new_password: str, confirm_password: str) -> ResetState:
        transition = begin_reset(
            self.state, code, new_password, confirm_password,
            link_token=self.link_token,
            cached_token=self.policy.cached_token(OtpType.RECOVERY),
        )
        await self._apply(transition)
        return self.state

    async def apply_link(self, link: DeepLink) -> bool:
        """
        Returns True when the link pre-filled the code step.

        A recovery link without a usable short code is kept as the link token so
        the next confirm can authorise with it directly.
        """
        transition = apply_recovery_link(self.state, link)
        if not transition.effects:
            if link.type == OtpType.RECOVERY:
                self.link_token = link.access_token
                if isinstance(self.state, EmailEntryState):
                    await self._apply(Transition(CodeSentState(email=self.state.email)))
            return False
        await self._apply(transition)
        return True

    async def cancel(self) -> ResetState:
        await self._apply(cancel(self.state))
        return self.state

    async def _apply(self, transition: Transition) -> None:
        if transition.state.kind != self.state.kind:
            logger.info(f"Password reset flow: {self.state.kind} -> {transition.state.kind}")
        self.state = transition.state
        for effect in transition.effects:
            await self._run(effect)

    async def _run(self, effect: Effect) -> None:
        if isinstance(effect, SendResetEmail):
            await self._send_reset_email(effect.email)
        elif isinstance(effect, ApplyNewPassword):
            await self._apply_new_password(effect)
        elif isinstance(effect, CacheLinkToken):
            self.policy.cache_token(OtpType.RECOVERY, effect.token)
        elif isinstance(effect, ClearResetState):
            self.link_token = None
            self.policy.clear_token(OtpType.RECOVERY)

    async def _send_reset_email(self, email: str) -> None:
        try:
            await self.platform.auth.reset_password_for_email(email, redirect_to=settings.PASSWORD_RESET_REDIRECT_URL)
        except PlatformError as e:
            logger.warning(f"Password reset request failed: {e.message}")
            await self._apply(code_request_failed(self.state, e.message))
            return
        await self._apply(code_requested(self.state))

    async def _apply_new_password(self, effect: ApplyNewPassword) -> None:
        auth = self.platform.auth
        try:
            if effect.strategy in (ResetStrategy.LINK_TOKEN, ResetStrategy.CACHED_TOKEN):
                await auth.update_user(effect.new_password, access_token=effect.token)
            elif effect.strategy == ResetStrategy.FULL_TOKEN:
                await auth.verify_otp(effect.email, effect.code, OtpType.RECOVERY)
                await auth.update_user(effect.new_password)
            else:
                await auth.update_user(effect.new_password)
        except PlatformError as e:
            logger.info(f"Password reset via {effect.strategy.value} rejected: {e.message}")
            message = ERROR_USE_FULL_TOKEN if effect.strategy == ResetStrategy.BARE_CODE else e.message
            await self._apply(reset_failed(self.state, message))
            return

        logger.info(f"Password reset completed via {effect.strategy.value}")
        await self._apply(reset_succeeded(self.state))
