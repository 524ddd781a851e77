"""Credential storage for the token manager.

The token manager keeps the live bearer token in memory; the store is
where the refresh token comes from and where freshly issued access
tokens are persisted so another client sharing the store can pick them
up without a refresh exchange.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class TokenKind(Enum):
    """Types of tokens stored in the system."""

    REFRESH = "refresh"  # Long-lived refresh token
    ACCESS = "access"  # Short-lived bearer token


@dataclass(frozen=True)
class TokenKey:
    """Key for token storage: a namespace plus the token kind.

    The namespace is normally the refresh endpoint, so clients talking to
    different credential services never see each other's tokens.
    """

    namespace: str
    token_kind: TokenKind

    def to_string(self) -> str:
        return f"{self.namespace}:{self.token_kind.value}"


@dataclass
class TokenEntry:
    """A stored token with metadata."""

    value: str
    expires_at: Optional[datetime] = None  # None means no known expiry
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def is_expired(
        self, buffer_seconds: float = 0, now: Optional[datetime] = None
    ) -> bool:
        """Check if token is expired or will expire within ``buffer_seconds``."""
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        # Compare timezone-aware datetimes only
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        now = now or datetime.now(timezone.utc)
        return now >= expires_at - timedelta(seconds=buffer_seconds)


class TokenStore(ABC):
    """Abstract base class for token storage implementations."""

    @abstractmethod
    async def get(self, key: TokenKey) -> Optional[TokenEntry]:
        """Retrieve a token by key.

        Returns None if not found or expired.
        """

    @abstractmethod
    async def set(self, key: TokenKey, entry: TokenEntry) -> None:
        """Store or update a token."""

    @abstractmethod
    async def invalidate(self, key: TokenKey) -> None:
        """Invalidate a specific token."""

    @abstractmethod
    async def clear(self) -> None:
        """Clear all stored tokens."""

    async def get_refresh_token(self, namespace: str) -> Optional[str]:
        """Convenience method to get the refresh token value."""
        entry = await self.get(TokenKey(namespace, TokenKind.REFRESH))
        return entry.value if entry else None

    async def set_refresh_token(self, namespace: str, token: str) -> None:
        """Convenience method to store a refresh token without expiry."""
        await self.set(TokenKey(namespace, TokenKind.REFRESH), TokenEntry(value=token))

    async def get_access_token(self, namespace: str) -> Optional[TokenEntry]:
        """Convenience method to get an access token."""
        return await self.get(TokenKey(namespace, TokenKind.ACCESS))

    async def set_access_token(
        self,
        namespace: str,
        token: str,
        expires_at: datetime,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Convenience method to set an access token."""
        entry = TokenEntry(value=token, expires_at=expires_at, metadata=metadata or {})
        await self.set(TokenKey(namespace, TokenKind.ACCESS), entry)


class InMemoryTokenStore(TokenStore):
    """In-memory token storage with expiry and periodic cleanup."""

    def __init__(self, max_entries: int = 1000, cleanup_interval: float = 300):
        self._store: Dict[str, TokenEntry] = {}
        self._max_entries = max_entries
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = time.monotonic()

    async def get(self, key: TokenKey) -> Optional[TokenEntry]:
        """Get token with automatic cleanup of expired entries."""
        now = time.monotonic()

        # Periodic cleanup
        if now - self._last_cleanup > self._cleanup_interval:
            self._cleanup()
            self._last_cleanup = now

        key_str = key.to_string()
        entry = self._store.get(key_str)
        if entry is None:
            return None
        if entry.is_expired():
            del self._store[key_str]
            logger.debug(f"Removed expired token: {key_str}")
            return None
        return entry

    async def set(self, key: TokenKey, entry: TokenEntry) -> None:
        """Store token with size limit enforcement."""
        key_str = key.to_string()
        if key_str not in self._store and len(self._store) >= self._max_entries:
            oldest_key = min(self._store, key=lambda k: self._store[k].created_at)
            del self._store[oldest_key]
            logger.debug(f"Evicted oldest token due to size limit: {oldest_key}")

        self._store[key_str] = entry
        logger.debug(f"Stored token: {key_str}")

    async def invalidate(self, key: TokenKey) -> None:
        """Remove a specific token."""
        key_str = key.to_string()
        if self._store.pop(key_str, None) is not None:
            logger.debug(f"Invalidated token: {key_str}")

    async def clear(self) -> None:
        """Clear all tokens."""
        count = len(self._store)
        self._store.clear()
        logger.info(f"Cleared {count} tokens from store")

    def _cleanup(self) -> None:
        """Remove expired entries."""
        expired_keys = [key for key, entry in self._store.items() if entry.is_expired()]
        for key in expired_keys:
            del self._store[key]
        if expired_keys:
            logger.info(f"Cleaned up {len(expired_keys)} expired tokens")

    def __len__(self) -> int:
        return len(self._store)
