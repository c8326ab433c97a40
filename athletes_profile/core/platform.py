"""
Async client for the hosted backend platform (auth, relational data, object storage).

Wraps the platform's REST surface the same way its browser SDK does:
- /auth/v1: sign-up, password sign-in, sign-out, one-time code verification,
  recovery emails, user updates. The current session is persisted in the
  client's key/value storage and session changes are pushed to subscribers.
- /rest/v1: row-level select/insert/update/delete through a small query builder.
- /storage/v1: bucket uploads, downloads, removals and public URLs.

No request is ever retried here, and no client-side timeout is imposed.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from athletes_profile.core.storage import StorageBackend
from athletes_profile.schemas.auth import AuthChangeEvent, AuthUser, OtpType, Session, SignUpResult

logger = logging.getLogger(__name__)

PLACEHOLDER_URL = "https://placeholder-project.supabase.co"
SESSION_STORAGE_KEY = "platform-auth-token"

AuthCallback = Callable[[AuthChangeEvent, Optional[Session]], None]


class PlatformError(Exception):
    """Error returned by (or while reaching) the hosted platform."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class AuthSessionMissingError(PlatformError):
    """Raised before any request when an operation needs a session and there is none."""

    def __init__(self):
        super().__init__("Auth session missing!", status_code=401, code="session_missing")


def _error_from_response(response: httpx.Response) -> PlatformError:
    """Build a PlatformError carrying the platform's own message."""
    message = None
    code = None
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        for field in ("msg", "message", "error_description", "error"):
            if body.get(field):
                message = str(body[field])
                break
        code = body.get("error_code") or body.get("code")

    if not message:
        message = response.text or f"Request failed with status {response.status_code}"

    return PlatformError(message, status_code=response.status_code, code=str(code) if code else None)


class Subscription:
    """Handle returned by on_auth_state_change."""

    def __init__(self, listeners: List[AuthCallback], callback: AuthCallback):
        self._listeners = listeners
        self.callback = callback

    def unsubscribe(self) -> None:
        if self.callback in self._listeners:
            self._listeners.remove(self.callback)


class PlatformAuth:
    """Auth half of the platform client."""

    def __init__(self, client: "PlatformClient", storage: StorageBackend):
        self._client = client
        self._storage = storage
        self._listeners: List[AuthCallback] = []

    # Session persistence

    def _load_session(self) -> Optional[Session]:
        raw = self._storage.get_item(SESSION_STORAGE_KEY)
        if not raw:
            return None
        try:
            return Session.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding unreadable persisted session")
            self._storage.remove_item(SESSION_STORAGE_KEY)
            return None

    def _save_session(self, session: Session) -> None:
        self._storage.set_item(SESSION_STORAGE_KEY, session.model_dump_json())

    def _remove_session(self) -> None:
        self._storage.remove_item(SESSION_STORAGE_KEY)

    def current_access_token(self) -> Optional[str]:
        """Access token of the persisted session, without refreshing it."""
        session = self._load_session()
        return session.access_token if session else None

    @staticmethod
    def _parse_session(body: Dict[str, Any]) -> Session:
        if body.get("expires_at") is None and body.get("expires_in"):
            body = {**body, "expires_at": int(time.time()) + int(body["expires_in"])}
        return Session.model_validate(body)

    # Subscriptions

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        self._listeners.append(callback)
        return Subscription(self._listeners, callback)

    def _emit(self, event: AuthChangeEvent, session: Optional[Session]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception(f"Auth state listener failed on {event.value}")

    # Operations

    async def sign_up(self, email: str, password: str, data: Optional[Dict[str, Any]] = None) -> SignUpResult:
        response = await self._client.request(
            "POST", "/auth/v1/signup",
            json={"email": email, "password": password, "data": data or {}},
        )
        body = response.json()

        if body.get("access_token"):
            session = self._parse_session(body)
            self._save_session(session)
            self._emit(AuthChangeEvent.SIGNED_IN, session)
            return SignUpResult(user=session.user, session=session)

        user_data = body.get("user") if isinstance(body.get("user"), dict) else body
        user = AuthUser.model_validate(user_data) if user_data.get("id") else None
        return SignUpResult(user=user, session=None)

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        response = await self._client.request(
            "POST", "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        session = self._parse_session(response.json())
        self._save_session(session)
        self._emit(AuthChangeEvent.SIGNED_IN, session)
        return session

    async def sign_out(self) -> None:
        """Revoke the current session server-side and always drop it locally."""
        session = self._load_session()
        try:
            if session:
                await self._client.request("POST", "/auth/v1/logout", access_token=session.access_token)
        except PlatformError as e:
            # Already-invalid sessions still count as signed out
            if e.status_code not in (401, 403, 404):
                raise
        finally:
            self._remove_session()
            self._emit(AuthChangeEvent.SIGNED_OUT, None)

    async def get_session(self) -> Optional[Session]:
        """Persisted session, refreshed only when its access token has expired."""
        session = self._load_session()
        if session is None or not session.is_expired():
            return session
        if not session.refresh_token:
            self._remove_session()
            return None

        try:
            response = await self._client.request(
                "POST", "/auth/v1/token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": session.refresh_token},
            )
        except PlatformError as e:
            logger.warning(f"Session refresh rejected: {e.message}")
            self._remove_session()
            self._emit(AuthChangeEvent.SIGNED_OUT, None)
            return None

        refreshed = self._parse_session(response.json())
        self._save_session(refreshed)
        self._emit(AuthChangeEvent.TOKEN_REFRESHED, refreshed)
        return refreshed

    async def get_user(self, access_token: Optional[str] = None) -> AuthUser:
        token = access_token or self.current_access_token()
        if not token:
            raise AuthSessionMissingError()
        response = await self._client.request("GET", "/auth/v1/user", access_token=token)
        return AuthUser.model_validate(response.json())

    async def reset_password_for_email(self, email: str, redirect_to: Optional[str] = None) -> None:
        params = {"redirect_to": redirect_to} if redirect_to else None
        await self._client.request("POST", "/auth/v1/recover", params=params, json={"email": email})

    async def verify_otp(self, email: str, token: str, otp_type: OtpType) -> Optional[Session]:
        response = await self._client.request(
            "POST", "/auth/v1/verify",
            json={"type": otp_type.value, "email": email, "token": token},
        )
        body = response.json()
        if not body.get("access_token"):
            return None

        session = self._parse_session(body)
        self._save_session(session)
        event = AuthChangeEvent.PASSWORD_RECOVERY if otp_type == OtpType.RECOVERY else AuthChangeEvent.SIGNED_IN
        self._emit(event, session)
        return session

    async def update_user(self, password: str, access_token: Optional[str] = None) -> AuthUser:
        """
        Update the password of the user behind access_token, or of the current session.

        Raises:
            AuthSessionMissingError: neither an explicit token nor a session exists
        """
        session = self._load_session()
        token = access_token or (session.access_token if session else None)
        if not token:
            raise AuthSessionMissingError()

        response = await self._client.request("PUT", "/auth/v1/user", json={"password": password}, access_token=token)
        user = AuthUser.model_validate(response.json())

        if session and session.access_token == token:
            session = session.model_copy(update={"user": user})
            self._save_session(session)
        self._emit(AuthChangeEvent.USER_UPDATED, session)
        return user


class TableQuery:
    """Chained PostgREST request, executed with `await query.execute()`."""

    def __init__(self, client: "PlatformClient", table: str):
        self._client = client
        self._table = table
        self._method = "GET"
        self._params: List[Tuple[str, str]] = []
        self._body: Any = None
        self._columns: Optional[str] = None
        self._single = False

    def select(self, columns: str = "*") -> "TableQuery":
        self._columns = columns
        return self

    def insert(self, values: Any) -> "TableQuery":
        self._method = "POST"
        self._body = values
        return self

    def update(self, values: Dict[str, Any]) -> "TableQuery":
        self._method = "PATCH"
        self._body = values
        return self

    def delete(self) -> "TableQuery":
        self._method = "DELETE"
        return self

    def eq(self, column: str, value: Any) -> "TableQuery":
        self._params.append((column, f"eq.{_format_value(value)}"))
        return self

    def in_(self, column: str, values: Sequence[Any]) -> "TableQuery":
        joined = ",".join(_format_value(v) for v in values)
        self._params.append((column, f"in.({joined})"))
        return self

    def order(self, column: str, desc: bool = False) -> "TableQuery":
        self._params.append(("order", f"{column}.{'desc' if desc else 'asc'}"))
        return self

    def single(self) -> "TableQuery":
        self._single = True
        return self

    async def execute(self) -> Any:
        params = list(self._params)
        headers: Dict[str, str] = {}

        if self._method == "GET":
            params.insert(0, ("select", self._columns or "*"))
        elif self._columns is not None:
            params.insert(0, ("select", self._columns))
            headers["Prefer"] = "return=representation"
        else:
            headers["Prefer"] = "return=minimal"

        if self._single:
            headers["Accept"] = "application/vnd.pgrst.object+json"

        response = await self._client.request(
            self._method, f"/rest/v1/{self._table}",
            params=params, json=self._body, headers=headers,
            access_token=self._client.auth.current_access_token(),
        )
        if not response.content:
            return None
        return response.json()


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


class StorageBucket:
    """Object storage operations scoped to one bucket."""

    def __init__(self, client: "PlatformClient", name: str):
        self._client = client
        self.name = name

    def _object_path(self, path: str) -> str:
        return f"/storage/v1/object/{self.name}/{quote(path.lstrip('/'))}"

    async def upload(
        self,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
        cache_control: str = "3600",
    ) -> str:
        await self._client.request(
            "POST", self._object_path(path),
            content=content,
            headers={
                "Content-Type": content_type,
                "Cache-Control": f"max-age={cache_control}",
                "x-upsert": "true" if upsert else "false",
            },
            access_token=self._client.auth.current_access_token(),
        )
        return path

    def get_public_url(self, path: str) -> str:
        return f"{self._client.url}/storage/v1/object/public/{self.name}/{quote(path.lstrip('/'))}"

    async def download(self, path: str) -> bytes:
        response = await self._client.request(
            "GET", self._object_path(path),
            access_token=self._client.auth.current_access_token(),
        )
        return response.content

    async def remove(self, paths: Sequence[str]) -> None:
        await self._client.request(
            "DELETE", f"/storage/v1/object/{self.name}",
            json={"prefixes": list(paths)},
            access_token=self._client.auth.current_access_token(),
        )


class PlatformClient:
    """
    One platform client per client context (browser tab).

    Args:
        url: Platform base URL; a placeholder is used when empty so the app can still start
        anon_key: Public API key
        storage: Where the session is persisted
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        storage: StorageBackend,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not url or not anon_key:
            logger.warning("Platform URL or anon key missing; platform calls will fail")
        self.url = (url or PLACEHOLDER_URL).rstrip("/")
        self.anon_key = anon_key
        self._transport = transport
        self.auth = PlatformAuth(self, storage)

    def table(self, name: str) -> TableQuery:
        return TableQuery(self, name)

    def bucket(self, name: str) -> StorageBucket:
        return StorageBucket(self, name)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Any = None,
        json: Any = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        access_token: Optional[str] = None,
    ) -> httpx.Response:
        """
        Send one request to the platform.

        Raises:
            PlatformError: on transport failure or any non-2xx response
        """
        request_headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {access_token or self.anon_key}",
        }
        request_headers.update(headers or {})

        try:
            async with httpx.AsyncClient(base_url=self.url, transport=self._transport, timeout=None) as client:
                response = await client.request(
                    method, path,
                    params=params, json=json, content=content, headers=request_headers,
                )
        except httpx.HTTPError as e:
            logger.error(f"Platform request {method} {path} failed: {e}")
            raise PlatformError(f"Network error: {e}") from e

        if response.status_code >= 400:
            raise _error_from_response(response)
        return response
