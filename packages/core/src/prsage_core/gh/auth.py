"""GitHub App installation tokens with an injected TTL cache.

Installation tokens are valid for an hour; minting one per review is wasted
API quota. The cache is passed in rather than held at module level so tests
(and multi-process deployments) can supply their own.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod

from github import Auth, Github, GithubIntegration

logger = logging.getLogger(__name__)

# Refresh a little before GitHub's one-hour expiry.
DEFAULT_TOKEN_TTL_SECONDS = 50 * 60


class TokenCache(ABC):
    @abstractmethod
    def get(self, key: str) -> str | None: ...

    @abstractmethod
    def set(self, key: str, value: str, ttl: float) -> None: ...

    @abstractmethod
    def invalidate(self, key: str) -> None: ...


class InMemoryTokenCache(TokenCache):
    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[str, float]] = {}

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str, ttl: float) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock() + ttl)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)


class InstallationTokenProvider:
    """Mints and caches installation access tokens for one GitHub App."""

    def __init__(
        self,
        app_id: int | str,
        private_key: str,
        cache: TokenCache | None = None,
        ttl: float = DEFAULT_TOKEN_TTL_SECONDS,
        integration=None,
    ):
        self.cache = cache or InMemoryTokenCache()
        self.ttl = ttl
        self._integration = integration or GithubIntegration(auth=Auth.AppAuth(app_id, private_key))

    def token(self, installation_id: int) -> str:
        key = f"installation:{installation_id}"
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        logger.debug("Minting installation token for %s", installation_id)
        token = self._integration.get_access_token(installation_id).token
        self.cache.set(key, token, self.ttl)
        return token

    def invalidate(self, installation_id: int) -> None:
        self.cache.invalidate(f"installation:{installation_id}")

    def client(self, installation_id: int) -> Github:
        return Github(auth=Auth.Token(self.token(installation_id)))
