"""
Parsing of the links the platform appends to emailed confirmation and recovery URLs.

The platform redirects to `<site>#access_token=...&type=signup|recovery`. The last
six characters of the access token double as the short code shown to the user.
"""

import re
from dataclasses import dataclass
from typing import Optional, Set
from urllib.parse import parse_qs, urlsplit

from athletes_profile.schemas.auth import OtpType

SHORT_CODE_LENGTH = 6


@dataclass(frozen=True)
class DeepLink:
    access_token: str
    type: OtpType
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None

    @property
    def short_code(self) -> Optional[str]:
        return derive_short_code(self.access_token)


def derive_short_code(token: Optional[str]) -> Optional[str]:
    """Last six characters of token with non-digits removed, if six digits remain."""
    if not token:
        return None
    digits = re.sub(r"\D", "", token[-SHORT_CODE_LENGTH:])
    return digits if len(digits) == SHORT_CODE_LENGTH else None


def _fragment_of(url_or_fragment: str) -> str:
    value = (url_or_fragment or "").strip()
    if "://" in value or value.startswith("/"):
        return urlsplit(value).fragment
    return value.lstrip("#")


def parse_fragment(url_or_fragment: str) -> Optional[DeepLink]:
    """
    Read an access token link from a full URL or a bare fragment.

    Returns None when there is no access token or the type is not signup/recovery.
    """
    params = parse_qs(_fragment_of(url_or_fragment))
    access_token = (params.get("access_token") or [None])[0]
    link_type = (params.get("type") or [None])[0]
    if not access_token or link_type not in (OtpType.SIGNUP.value, OtpType.RECOVERY.value):
        return None

    expires_in = (params.get("expires_in") or [None])[0]
    return DeepLink(
        access_token=access_token,
        type=OtpType(link_type),
        refresh_token=(params.get("refresh_token") or [None])[0],
        expires_in=int(expires_in) if expires_in and expires_in.isdigit() else None,
    )


class DeepLinkGate:
    """Hands out each link at most once per client context."""

    def __init__(self):
        self._seen: Set[str] = set()

    def consume(self, url_or_fragment: str) -> Optional[DeepLink]:
        link = parse_fragment(url_or_fragment)
        if link is None or link.access_token in self._seen:
            return None
        self._seen.add(link.access_token)
        return link
