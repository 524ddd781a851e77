"""Bearer-token acquisition, storage and refresh."""

from .token_manager import TokenManager, TokenStatus
from .token_store import (
    InMemoryTokenStore,
    TokenEntry,
    TokenKey,
    TokenKind,
    TokenStore,
)

__all__ = [
    "InMemoryTokenStore",
    "TokenEntry",
    "TokenKey",
    "TokenKind",
    "TokenManager",
    "TokenStatus",
    "TokenStore",
]
