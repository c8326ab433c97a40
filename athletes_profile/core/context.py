"""
Per-client contexts.

A client context is everything a single browser tab owns: its storage, platform
client, Session Manager and one instance of each flow. Contexts never share
mutable state with each other.
"""

import logging
import time
from collections import OrderedDict
from typing import Callable, Optional, Tuple

from athletes_profile.core.config import settings
from athletes_profile.core.deep_link import DeepLinkGate
from athletes_profile.core.platform import PlatformClient
from athletes_profile.core.preferences import SessionPolicyStore
from athletes_profile.core.storage import get_client_storage
from athletes_profile.services.athletes import AthleteService
from athletes_profile.services.password_reset import PasswordResetFlow
from athletes_profile.services.profiles import ProfileService
from athletes_profile.services.registration import RegistrationFlow
from athletes_profile.services.session_manager import SessionManager

logger = logging.getLogger(__name__)


class ClientContext:
    def __init__(self, client_id: str, platform: PlatformClient, policy: SessionPolicyStore):
        self.client_id = client_id
        self.platform = platform
        self.policy = policy
        self.profiles = ProfileService(platform, policy)
        self.sessions = SessionManager(platform, policy, self.profiles)
        self.registration = RegistrationFlow(platform, policy, self.profiles)
        self.password_reset = PasswordResetFlow(platform, policy)
        self.athletes = AthleteService(platform)
        self.deep_links = DeepLinkGate()
        self.bootstrapped = False

    async def ensure_bootstrapped(self) -> None:
        """Run the session bootstrap once per context, before anything reads identity."""
        if not self.bootstrapped:
            self.bootstrapped = True
            await self.sessions.bootstrap()

    def close(self) -> None:
        self.sessions.close()


def build_client_context(client_id: str) -> ClientContext:
    storage = get_client_storage(client_id)
    platform = PlatformClient(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY, storage)
    return ClientContext(client_id, platform, SessionPolicyStore(storage))


class ClientRegistry:
    """
    In-process map of client id to context, created on first use.

    Contexts idle for longer than idle_seconds are evicted, and once more than
    max_contexts are held the least recently used one goes. Evicted contexts are
    closed; their storage stays, so a returning client rebuilds its context from it.
    """

    def __init__(
        self,
        factory: Callable[[str], ClientContext] = build_client_context,
        max_contexts: Optional[int] = None,
        idle_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._factory = factory
        self.max_contexts = max_contexts if max_contexts is not None else settings.CLIENT_CONTEXT_LIMIT
        self.idle_seconds = idle_seconds if idle_seconds is not None else settings.CLIENT_CONTEXT_IDLE_SECONDS
        self._clock = clock
        # client id -> (context, last used), least recently used first
        self._contexts: "OrderedDict[str, Tuple[ClientContext, float]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._contexts)

    def __contains__(self, client_id: str) -> bool:
        return client_id in self._contexts

    def build(self, client_id: str) -> ClientContext:
        """A context that is not registered; the caller closes it."""
        return self._factory(client_id)

    def get(self, client_id: str) -> ClientContext:
        now = self._clock()
        self._evict_idle(now)

        entry = self._contexts.pop(client_id, None)
        if entry is None:
            context = self._factory(client_id)
            logger.info(f"Client context created: {client_id}")
        else:
            context = entry[0]
        self._contexts[client_id] = (context, now)

        while len(self._contexts) > self.max_contexts:
            oldest = next(iter(self._contexts))
            logger.info(f"Client context evicted (limit {self.max_contexts}): {oldest}")
            self.discard(oldest)
        return context

    def _evict_idle(self, now: float) -> None:
        for client_id, (_, last_used) in list(self._contexts.items()):
            if now - last_used <= self.idle_seconds:
                # Ordered by last use, the rest are newer
                break
            logger.info(f"Client context evicted (idle): {client_id}")
            self.discard(client_id)

    def discard(self, client_id: str) -> None:
        entry = self._contexts.pop(client_id, None)
        if entry:
            entry[0].close()

    def close_all(self) -> None:
        for client_id in list(self._contexts):
            self.discard(client_id)


registry = ClientRegistry()
