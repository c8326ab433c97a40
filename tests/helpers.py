"""
Test helpers: a recording stub of the platform's HTTP surface and session payload builders.
"""

import json
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import httpx

from athletes_profile.core.platform import SESSION_STORAGE_KEY
from athletes_profile.core.storage import MemoryStorage

PLATFORM_URL = "https://project.supabase.co"
ANON_KEY = "anon-key"

Responder = Callable[[httpx.Request], httpx.Response]


class PlatformStub:
    """
    Routes platform requests by (method, path) to canned responses and records every call.

    A route path ending in "*" matches by prefix. Unrouted requests get a 500 so
    an unexpected platform call fails the test loudly.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], Union[httpx.Response, Responder]] = {}
        self.requests: List[httpx.Request] = []

    def on(self, method: str, path: str, status_code: int = 200, json: Any = None, responder: Optional[Responder] = None):
        if responder is not None:
            self.routes[(method, path)] = responder
        elif json is None:
            self.routes[(method, path)] = httpx.Response(status_code)
        else:
            self.routes[(method, path)] = httpx.Response(status_code, json=json)

    def _route(self, method: str, path: str):
        if (method, path) in self.routes:
            return self.routes[(method, path)]
        for (route_method, route_path), route in self.routes.items():
            if route_method == method and route_path.endswith("*") and path.startswith(route_path[:-1]):
                return route
        return None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self._route(request.method, request.url.path)
        if route is None:
            return httpx.Response(500, json={"message": f"No stub for {request.method} {request.url.path}"})
        if callable(route):
            return route(request)
        return httpx.Response(route.status_code, content=route.content, headers=route.headers)

    def calls(self, method: Optional[str] = None, path: Optional[str] = None) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if (method is None or r.method == method)
            and (path is None or r.url.path == path or (path.endswith("*") and r.url.path.startswith(path[:-1])))
        ]

    @staticmethod
    def body(request: httpx.Request) -> Any:
        return json.loads(request.content) if request.content else None


def user_payload(user_id: str = "user-1", email: str = "student@example.com", role: str = "student") -> Dict[str, Any]:
    return {"id": user_id, "email": email, "user_metadata": {"role": role}}


def session_payload(
    user_id: str = "user-1",
    email: str = "student@example.com",
    role: str = "student",
    access_token: str = "access-token-000000",
    expires_at: Optional[int] = None,
) -> Dict[str, Any]:
    return {
        "access_token": access_token,
        "refresh_token": "refresh-token",
        "token_type": "bearer",
        "expires_in": 3600,
        "expires_at": expires_at if expires_at is not None else int(time.time()) + 3600,
        "user": user_payload(user_id, email, role),
    }


def persist_session(storage: MemoryStorage, **kwargs) -> Dict[str, Any]:
    """Put a session into client storage the way the platform client persists it."""
    payload = session_payload(**kwargs)
    storage.set_item(SESSION_STORAGE_KEY, json.dumps(payload))
    return payload

