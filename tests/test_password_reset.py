"""
Unit tests for the password reset flow.

Tests:
- Requesting a reset code
- Input validation before any platform call
- Each way of authorising the new password
- Recovery deep links
"""

import pytest

from athletes_profile.core.config import settings
from athletes_profile.core.deep_link import DeepLink
from athletes_profile.schemas.auth import OtpType
from athletes_profile.schemas.password_reset import CodeSentState, EmailEntryState, PasswordResetState
from athletes_profile.services.password_reset import (
    ERROR_CODE_MISMATCH,
    ERROR_EMAIL_REQUIRED,
    ERROR_INVALID_CODE,
    ERROR_INVALID_TOKEN,
    ERROR_PASSWORD_LENGTH,
    ERROR_PASSWORD_MISMATCH,
    ERROR_USE_FULL_TOKEN,
    NOTICE_CODE_SENT,
    ResetStrategy,
    choose_strategy,
)
from tests.helpers import PlatformStub, persist_session, session_payload, user_payload


RECOVER_PATH = "/auth/v1/recover"
VERIFY_PATH = "/auth/v1/verify"
USER_PATH = "/auth/v1/user"


@pytest.fixture
def code_sent_flow(reset_flow):
    reset_flow.state = CodeSentState(email="a@b.com", notice=NOTICE_CODE_SENT)
    return reset_flow


class TestRequestCode:
    """Test the first step: asking for a recovery email"""

    @pytest.mark.asyncio
    async def test_email_required(self, reset_flow, stub):
        state = await reset_flow.request_code("  ")

        assert isinstance(state, EmailEntryState)
        assert state.error == ERROR_EMAIL_REQUIRED
        assert stub.requests == []

    @pytest.mark.asyncio
    async def test_code_sent(self, reset_flow, stub):
        stub.on("POST", RECOVER_PATH, json={})

        state = await reset_flow.request_code("a@b.com")

        assert isinstance(state, CodeSentState)
        assert state.email == "a@b.com"
        assert state.notice == NOTICE_CODE_SENT

        request = stub.calls("POST", RECOVER_PATH)[0]
        assert PlatformStub.body(request) == {"email": "a@b.com"}
        assert request.url.params["redirect_to"] == settings.PASSWORD_RESET_REDIRECT_URL

    @pytest.mark.asyncio
    async def test_platform_error_shown(self, reset_flow, stub):
        stub.on("POST", RECOVER_PATH, status_code=429, json={"msg": "For security purposes, you can only request this once every 60 seconds"})

        state = await reset_flow.request_code("a@b.com")

        assert isinstance(state, EmailEntryState)
        assert state.email == "a@b.com"
        assert state.error.startswith("For security purposes")

    @pytest.mark.asyncio
    async def test_new_request_after_reset(self, reset_flow, stub):
        """Test a completed reset accepts another request without cancelling first"""
        reset_flow.state = PasswordResetState()
        stub.on("POST", RECOVER_PATH, json={})

        state = await reset_flow.request_code("a@b.com")

        assert isinstance(state, CodeSentState)
        assert len(stub.calls("POST", RECOVER_PATH)) == 1


class TestResetValidation:
    """Invalid input never reaches the platform"""

    @pytest.mark.asyncio
    async def test_password_too_short(self, code_sent_flow, stub):
        """Test a 5-character password is rejected"""
        state = await code_sent_flow.confirm("654321", "abcde", "abcde")

        assert isinstance(state, CodeSentState)
        assert state.error == ERROR_PASSWORD_LENGTH
        assert stub.requests == []

    @pytest.mark.asyncio
    async def test_passwords_must_match(self, code_sent_flow, stub):
        state = await code_sent_flow.confirm("654321", "abcdef", "abcdeg")

        assert state.error == ERROR_PASSWORD_MISMATCH
        assert stub.requests == []

    @pytest.mark.asyncio
    async def test_code_must_be_six_digits(self, code_sent_flow, stub):
        state = await code_sent_flow.confirm("65432", "abcdef", "abcdef")

        assert state.error == ERROR_INVALID_CODE
        assert stub.requests == []

    @pytest.mark.asyncio
    async def test_full_token_minimum_length(self, code_sent_flow, stub):
        await code_sent_flow.toggle_full_token()

        state = await code_sent_flow.confirm("short", "abcdef", "abcdef")

        assert state.use_full_token is True
        assert state.error == ERROR_INVALID_TOKEN
        assert stub.requests == []


class TestResetStrategies:
    """Test authorising the new password"""

    @pytest.mark.asyncio
    async def test_bare_code_without_session(self, reset_flow, stub):
        """
        Test the full scenario: code requested, bare code typed, no session held.

        The direct update is refused and the user is pointed to the full token or link.
        """
        stub.on("POST", RECOVER_PATH, json={})

        state = await reset_flow.request_code("a@b.com")
        assert isinstance(state, CodeSentState)

        state = await reset_flow.confirm("654321", "newpass1", "newpass1")

        assert isinstance(state, CodeSentState)
        assert state.error == ERROR_USE_FULL_TOKEN
        assert state.email == "a@b.com"
        assert stub.calls("PUT", USER_PATH) == []

    @pytest.mark.asyncio
    async def test_bare_code_with_recovery_session(self, code_sent_flow, stub, storage):
        """Test a six-character password proceeds when the platform already holds a session"""
        persist_session(storage, access_token="recovery-session-token")
        stub.on("PUT", USER_PATH, json=user_payload())

        state = await code_sent_flow.confirm("654321", "abcdef", "abcdef")

        assert isinstance(state, PasswordResetState)
        request = stub.calls("PUT", USER_PATH)[0]
        assert request.headers["Authorization"] == "Bearer recovery-session-token"
        assert PlatformStub.body(request) == {"password": "abcdef"}

    @pytest.mark.asyncio
    async def test_cached_link_token(self, code_sent_flow, stub, policy):
        policy.cache_token(OtpType.RECOVERY, "recovery-link-token-654321")
        stub.on("PUT", USER_PATH, json=user_payload())

        state = await code_sent_flow.confirm("654321", "newpass1", "newpass1")

        assert isinstance(state, PasswordResetState)
        assert stub.calls("PUT", USER_PATH)[0].headers["Authorization"] == "Bearer recovery-link-token-654321"
        assert policy.cached_token(OtpType.RECOVERY) is None

    @pytest.mark.asyncio
    async def test_cached_link_token_mismatch(self, code_sent_flow, stub, policy):
        policy.cache_token(OtpType.RECOVERY, "recovery-link-token-654321")

        state = await code_sent_flow.confirm("111111", "newpass1", "newpass1")

        assert state.error == ERROR_CODE_MISMATCH
        assert stub.requests == []
        assert policy.cached_token(OtpType.RECOVERY) == "recovery-link-token-654321"

    @pytest.mark.asyncio
    async def test_full_token(self, code_sent_flow, stub):
        """Test a pasted full token is verified first, then the password updated with the new session"""
        full_token = "pkce_0123456789abcdef"
        stub.on("POST", VERIFY_PATH, json=session_payload(access_token="verified-recovery-token"))
        stub.on("PUT", USER_PATH, json=user_payload())
        await code_sent_flow.toggle_full_token()

        state = await code_sent_flow.confirm(full_token, "newpass1", "newpass1")

        assert isinstance(state, PasswordResetState)
        assert PlatformStub.body(stub.calls("POST", VERIFY_PATH)[0]) == {
            "type": "recovery",
            "email": "a@b.com",
            "token": full_token,
        }
        assert stub.calls("PUT", USER_PATH)[0].headers["Authorization"] == "Bearer verified-recovery-token"

    @pytest.mark.asyncio
    async def test_full_token_rejected(self, code_sent_flow, stub):
        stub.on("POST", VERIFY_PATH, status_code=403, json={"msg": "Token has expired or is invalid"})
        await code_sent_flow.toggle_full_token()

        state = await code_sent_flow.confirm("pkce_0123456789abcdef", "newpass1", "newpass1")

        assert isinstance(state, CodeSentState)
        assert state.use_full_token is True
        assert state.error == "Token has expired or is invalid"
        assert stub.calls("PUT", USER_PATH) == []


class TestRecoveryLink:
    """Test emailed recovery links"""

    @pytest.mark.asyncio
    async def test_link_prefills_code(self, reset_flow, stub, policy):
        link = DeepLink(access_token="eyJhbGciOi.recovery.x654321", type=OtpType.RECOVERY)

        applied = await reset_flow.apply_link(link)

        assert applied is True
        assert isinstance(reset_flow.state, CodeSentState)
        assert reset_flow.state.code == "654321"
        assert policy.cached_token(OtpType.RECOVERY) == link.access_token
        assert stub.requests == []

    @pytest.mark.asyncio
    async def test_link_without_code_authorises_directly(self, reset_flow, stub):
        """Test a link whose short code cannot be derived is used as the credential"""
        link = DeepLink(access_token="eyJhbGciOi.recovery.abcdef", type=OtpType.RECOVERY)

        applied = await reset_flow.apply_link(link)
        assert applied is False
        assert isinstance(reset_flow.state, CodeSentState)

        stub.on("PUT", USER_PATH, json=user_payload())
        state = await reset_flow.confirm("123456", "newpass1", "newpass1")

        assert isinstance(state, PasswordResetState)
        assert stub.calls("PUT", USER_PATH)[0].headers["Authorization"] == f"Bearer {link.access_token}"
        assert reset_flow.link_token is None

    @pytest.mark.asyncio
    async def test_signup_link_ignored(self, reset_flow):
        applied = await reset_flow.apply_link(DeepLink(access_token="token-123456", type=OtpType.SIGNUP))

        assert applied is False
        assert isinstance(reset_flow.state, EmailEntryState)
        assert reset_flow.link_token is None


class TestCancel:

    @pytest.mark.asyncio
    async def test_cancel_returns_to_email_entry(self, code_sent_flow):
        state = await code_sent_flow.cancel()

        assert isinstance(state, EmailEntryState)
        assert state.email == ""


class TestChooseStrategy:
    """Order in which credentials are tried"""

    def test_link_token_wins(self):
        assert choose_strategy("123456", False, "link", "cached-123456") == (ResetStrategy.LINK_TOKEN, "link")

    def test_cached_token_must_match(self):
        assert choose_strategy("123456", False, None, "cached-123456") == (ResetStrategy.CACHED_TOKEN, "cached-123456")
        assert choose_strategy("999999", False, None, "cached-123456") == (None, None)

    def test_full_token(self):
        assert choose_strategy("a-long-token", True, None, None) == (ResetStrategy.FULL_TOKEN, "a-long-token")

    def test_bare_code(self):
        assert choose_strategy("123456", False, None, None) == (ResetStrategy.BARE_CODE, None)
