"""Pydantic models for credential handling.

The models provide validation for:
- The bearer token currently held by a client
- The body returned by the credential-refresh endpoint
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TokenState(BaseModel):
    """Bearer token held by the token manager.

    :param token: The access token value
    :type token: str
    :param expires_at: When the token expires (timezone-aware)
    :type expires_at: datetime
    :param token_type: Authorization scheme (default: "Bearer")
    :type token_type: str
    :param issued_at: When the token was obtained, if known
    :type issued_at: Optional[datetime]
    """

    model_config = ConfigDict(frozen=True)

    token: str
    expires_at: datetime
    token_type: str = "Bearer"
    issued_at: Optional[datetime] = None

    def lifetime_seconds(self) -> Optional[float]:
        """Return the full lifetime of the token, or None when unknown."""
        if self.issued_at is None:
            return None
        return (self.expires_at - self.issued_at).total_seconds()

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Return whether the token is past its expiry.

        :param now: Reference time, defaults to the current UTC time
        :return: True if ``now >= expires_at``
        """
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at

    def seconds_remaining(self, now: Optional[datetime] = None) -> float:
        """Return the seconds left before expiry (negative once expired)."""
        now = now or datetime.now(timezone.utc)
        return (self.expires_at - now).total_seconds()


class RefreshTokenResponse(BaseModel):
    """Body returned by the credential-refresh endpoint.

    :param token: New access token
    :type token: str
    :param expires_in: Token lifetime in seconds
    :type expires_in: float
    :param refresh_token: Rotated refresh token, when the endpoint issues one
    :type refresh_token: Optional[str]
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    token: str = Field(..., min_length=1)
    expires_in: float = Field(..., alias="expiresIn", ge=0)
    refresh_token: Optional[str] = Field(None, alias="refreshToken")
