"""
SessionPolicyStore: the client-held state shared by the Session Manager and both flows.

Keys:
- rememberMe: "true" or absent
- signup_confirmation_token / password_reset_token: raw tokens from emailed links
- pending_id_picture: ID picture staged client-side until the account can upload it
"""

import base64
import json
import logging
from dataclasses import dataclass
from typing import Optional

from athletes_profile.core.storage import StorageBackend
from athletes_profile.schemas.auth import OtpType

logger = logging.getLogger(__name__)

REMEMBER_ME_KEY = "rememberMe"
PENDING_ID_PICTURE_KEY = "pending_id_picture"
TOKEN_KEYS = {
    OtpType.SIGNUP: "signup_confirmation_token",
    OtpType.RECOVERY: "password_reset_token",
}


@dataclass(frozen=True)
class StagedPicture:
    """ID picture bytes kept client-side until the account is confirmed."""
    filename: str
    content_type: str
    content: bytes
    student_id: str


class SessionPolicyStore:
    """Typed access to the client's remember-me flag, cached link tokens and staged picture."""

    def __init__(self, storage: StorageBackend):
        self._storage = storage

    # Remember preference

    def remember(self) -> bool:
        return self._storage.get_item(REMEMBER_ME_KEY) == "true"

    def set_remember(self, value: bool) -> None:
        if value:
            self._storage.set_item(REMEMBER_ME_KEY, "true")
        else:
            self._storage.remove_item(REMEMBER_ME_KEY)

    def clear_remember(self) -> None:
        self._storage.remove_item(REMEMBER_ME_KEY)

    # Cached deep-link tokens

    def cached_token(self, kind: OtpType) -> Optional[str]:
        return self._storage.get_item(TOKEN_KEYS[kind])

    def cache_token(self, kind: OtpType, token: str) -> None:
        self._storage.set_item(TOKEN_KEYS[kind], token)

    def clear_token(self, kind: OtpType) -> None:
        self._storage.remove_item(TOKEN_KEYS[kind])

    # Staged ID picture

    def stage_id_picture(self, picture: StagedPicture) -> None:
        encoded = base64.b64encode(picture.content).decode("ascii")
        self._storage.set_item(PENDING_ID_PICTURE_KEY, json.dumps({
            "data": f"data:{picture.content_type};base64,{encoded}",
            "name": picture.filename,
            "studentId": picture.student_id,
        }))

    def staged_id_picture(self) -> Optional[StagedPicture]:
        raw = self._storage.get_item(PENDING_ID_PICTURE_KEY)
        if not raw:
            return None
        try:
            payload = json.loads(raw)
            header, encoded = payload["data"].split(",", 1)
            content_type = header[len("data:"):].split(";", 1)[0] or "application/octet-stream"
            return StagedPicture(
                filename=payload.get("name") or "id-picture",
                content_type=content_type,
                content=base64.b64decode(encoded),
                student_id=payload.get("studentId") or "",
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Dropping unreadable staged ID picture: {e}")
            self.clear_staged_id_picture()
            return None

    def clear_staged_id_picture(self) -> None:
        self._storage.remove_item(PENDING_ID_PICTURE_KEY)
