"""
Registration and email-code confirmation flow.

States: form -> submitting -> awaiting_code -> verifying -> confirmed, with cancel
returning to form from anywhere.

The transition functions are pure: they take the current state and an input and
return the next state plus the effects to run. RegistrationFlow runs those effects
against the platform, one at a time, and feeds the outcome back in.

Failure handling:
- Validation errors never reach the platform; the state stays on the form.
- Account creation errors are shown verbatim and the draft is kept.
- Profile enrichment and ID picture upload are best-effort: they are logged and
  degrade to the deferred path, the account already exists.
- A rejected code leaves the flow on awaiting_code with the email kept.
There are no automatic retries.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from athletes_profile.core.deep_link import DeepLink, derive_short_code
from athletes_profile.core.logging_config import mask_email
from athletes_profile.core.platform import PlatformClient, PlatformError
from athletes_profile.core.preferences import SessionPolicyStore
from athletes_profile.schemas.auth import OtpType, SignUpResult
from athletes_profile.schemas.registration import (
    AwaitingCodeState,
    RegistrationConfirmedState,
    RegistrationDraft,
    RegistrationFormState,
    RegistrationState,
    RegistrationSubmittingState,
    VerifyingCodeState,
)
from athletes_profile.services.profiles import ProfileService

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
CODE_PATTERN = re.compile(r"^\d{6}$")

NOTICE_CHECK_EMAIL = "Account created! Please check your email for the confirmation code."
NOTICE_PICTURE_DEFERRED = "Account created! ID picture will be uploaded after email confirmation."
NOTICE_PICTURE_MANUAL = "Account created! You can upload your ID picture after email confirmation."
ERROR_CODE_FORMAT = "Please enter the 6-digit code from your email"
ERROR_EMAIL_MISSING = "Unable to verify. Please enter your email again."
ERROR_CODE_REJECTED = "Invalid confirmation code. Please check your email."


# Effects

@dataclass(frozen=True)
class RetainPending:
    draft: RegistrationDraft


@dataclass(frozen=True)
class CreateAccount:
    draft: RegistrationDraft


@dataclass(frozen=True)
class VerifySignupCode:
    email: str
    code: str


@dataclass(frozen=True)
class CacheLinkToken:
    token: str


@dataclass(frozen=True)
class DiscardPending:
    pass


@dataclass(frozen=True)
class ClearLinkToken:
    pass


Effect = Union[RetainPending, CreateAccount, VerifySignupCode, CacheLinkToken, DiscardPending, ClearLinkToken]


@dataclass(frozen=True)
class Transition:
    state: RegistrationState
    effects: Tuple[Effect, ...] = ()


# Transitions

def validate_draft(draft: RegistrationDraft) -> Optional[str]:
    """First violated precondition, or None when the draft may be submitted."""
    if not draft.email.strip():
        return "Email is required!"
    if draft.password != draft.confirm_password:
        return "Passwords do not match!"
    if len(draft.password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long!"
    if not draft.student_id.strip():
        return "Student ID is required!"
    if draft.id_picture is None:
        return "Please upload your ID picture!"
    return None


def begin_submit(state: RegistrationState, draft: RegistrationDraft) -> Transition:
    # confirmed behaves like a fresh form
    if not isinstance(state, (RegistrationFormState, RegistrationConfirmedState)):
        return Transition(state)

    error = validate_draft(draft)
    if error:
        return Transition(RegistrationFormState(error=error), (RetainPending(draft),))

    return Transition(
        RegistrationSubmittingState(email=draft.email.strip()),
        (RetainPending(draft), CreateAccount(draft)),
    )


def account_creation_failed(state: RegistrationState, message: str) -> Transition:
    if not isinstance(state, RegistrationSubmittingState):
        return Transition(state)
    return Transition(RegistrationFormState(error=message))


def account_created(state: RegistrationState, notice: str) -> Transition:
    if not isinstance(state, RegistrationSubmittingState):
        # Cancelled while the request was in flight
        return Transition(state)
    return Transition(AwaitingCodeState(email=state.email, notice=notice))


def begin_verify(state: RegistrationState, code: str, email: Optional[str] = None) -> Transition:
    if not isinstance(state, AwaitingCodeState):
        return Transition(state)

    code = (code or "").strip()
    target = (email or "").strip() or state.email
    if not CODE_PATTERN.match(code):
        return Transition(state.model_copy(update={"code": code, "error": ERROR_CODE_FORMAT, "notice": None}))
    if not target:
        return Transition(state.model_copy(update={"code": code, "error": ERROR_EMAIL_MISSING, "notice": None}))

    return Transition(VerifyingCodeState(email=target, code=code), (VerifySignupCode(target, code),))


def code_rejected(state: RegistrationState, message: str) -> Transition:
    if not isinstance(state, VerifyingCodeState):
        return Transition(state)
    return Transition(AwaitingCodeState(email=state.email, code=state.code, error=message or ERROR_CODE_REJECTED))


def code_confirmed(state: RegistrationState) -> Transition:
    if not isinstance(state, VerifyingCodeState):
        return Transition(state)
    return Transition(RegistrationConfirmedState(), (DiscardPending(), ClearLinkToken()))


def apply_signup_link(state: RegistrationState, link: DeepLink, pending_email: str = "") -> Transition:
    """Jump to awaiting_code with the short code derived from an emailed signup link."""
    if link.type != OtpType.SIGNUP:
        return Transition(state)
    code = derive_short_code(link.access_token)
    if code is None:
        return Transition(state)

    email = state.email if isinstance(state, (AwaitingCodeState, RegistrationSubmittingState)) else pending_email
    return Transition(AwaitingCodeState(email=email, code=code), (CacheLinkToken(link.access_token),))


def cancel(state: RegistrationState) -> Transition:
    return Transition(RegistrationFormState(), (DiscardPending(),))


# Driver

class RegistrationFlow:
    """
    One registration flow per client context.

    Holds the current state and the pending registration (the form contents,
    password and picked files), which survives failed submissions and is dropped
    on confirmation or cancel.
    """

    def __init__(self, platform: PlatformClient, policy: SessionPolicyStore, profiles: ProfileService):
        self.platform = platform
        self.policy = policy
        self.profiles = profiles
        self.state: RegistrationState = RegistrationFormState()
        self.pending: Optional[RegistrationDraft] = None

    async def submit(self, draft: RegistrationDraft) -> RegistrationState:
        await self._apply(begin_submit(self.state, draft))
        return self.state

    async def verify(self, code: str, email: Optional[str] = None) -> RegistrationState:
        await self._apply(begin_verify(self.state, code, email))
        return self.state

    async def apply_link(self, link: DeepLink) -> bool:
        """Returns True when the link moved the flow to the code step."""
        pending_email = self.pending.email if self.pending else ""
        transition = apply_signup_link(self.state, link, pending_email)
        await self._apply(transition)
        return bool(transition.effects)

    async def cancel(self) -> RegistrationState:
        await self._apply(cancel(self.state))
        return self.state

    async def _apply(self, transition: Transition) -> None:
        if transition.state.kind != self.state.kind:
            logger.info(f"Registration flow: {self.state.kind} -> {transition.state.kind}")
        self.state = transition.state
        for effect in transition.effects:
            await self._run(effect)

    async def _run(self, effect: Effect) -> None:
        if isinstance(effect, RetainPending):
            self.pending = effect.draft
        elif isinstance(effect, CreateAccount):
            await self._create_account(effect.draft)
        elif isinstance(effect, VerifySignupCode):
            await self._verify_code(effect.email, effect.code)
        elif isinstance(effect, CacheLinkToken):
            self.policy.cache_token(OtpType.SIGNUP, effect.token)
        elif isinstance(effect, DiscardPending):
            self.pending = None
        elif isinstance(effect, ClearLinkToken):
            self.policy.clear_token(OtpType.SIGNUP)

    async def _create_account(self, draft: RegistrationDraft) -> None:
        email = draft.email.strip()
        try:
            result = await self.platform.auth.sign_up(email, draft.password, draft.metadata().model_dump(mode="json"))
        except PlatformError as e:
            logger.warning(f"Account creation rejected for {mask_email(email)}: {e.message}")
            await self._apply(account_creation_failed(self.state, e.message))
            return

        logger.info(f"Account created for {mask_email(email)}")

        if result.user:
            try:
                await self.profiles.enrich_profile(result.user.id, draft)
            except PlatformError as e:
                logger.error(f"Error updating user profile for {mask_email(email)}: {e.message}")

        notice = await self._handle_id_picture(draft, result)

        if result.session is not None and draft.profile_image is not None:
            try:
                await self.profiles.upload_profile_picture(result.session.user.id, draft.profile_image)
            except PlatformError as e:
                logger.error(f"Profile picture upload error for {mask_email(email)}: {e.message}")

        await self._apply(account_created(self.state, notice))

    async def _handle_id_picture(self, draft: RegistrationDraft, result: SignUpResult) -> str:
        """Upload now when the platform signed the account in, otherwise stage it."""
        picture = draft.id_picture
        if picture is None:
            return NOTICE_CHECK_EMAIL

        if result.session is not None:
            try:
                await self.profiles.upload_id_picture(
                    result.session.user.id, draft.student_id.strip(),
                    picture.filename, picture.content_type, picture.content,
                )
                return NOTICE_CHECK_EMAIL
            except PlatformError as e:
                logger.error(f"ID picture upload error for {mask_email(draft.email)}: {e.message}")

        try:
            self.profiles.stage_id_picture(draft)
        except OSError as e:
            logger.error(f"Could not stage ID picture for {mask_email(draft.email)}: {e}")
            return NOTICE_PICTURE_MANUAL
        return NOTICE_PICTURE_DEFERRED

    async def _verify_code(self, email: str, code: str) -> None:
        try:
            session = await self.platform.auth.verify_otp(email, code, OtpType.SIGNUP)
        except PlatformError as e:
            logger.info(f"Confirmation code rejected for {mask_email(email)}")
            await self._apply(code_rejected(self.state, e.message))
            return

        logger.info(f"Email confirmed for {mask_email(email)}")
        if session is not None:
            await self.profiles.upload_staged_id_picture(session.user.id)
        await self._apply(code_confirmed(self.state))
