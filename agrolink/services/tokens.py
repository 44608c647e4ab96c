import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, NamedTuple, Optional

from agrolink.core.config import settings
from agrolink.utils.clock import utcnow


class IssuedToken(NamedTuple):
    token: str
    expires_at: datetime


class TokenIssuer(ABC):
    """Produces opaque, single-purpose tokens with an expiry timestamp."""

    @abstractmethod
    def issue(self, purpose: str) -> IssuedToken: ...


class InvitationTokenIssuer(TokenIssuer):
    def __init__(
        self,
        expire_hours: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.expire_hours = expire_hours or settings.invitation_expire_hours
        self.clock = clock

    def issue(self, purpose: str = "invitation") -> IssuedToken:
        return IssuedToken(
            token=secrets.token_urlsafe(32),
            expires_at=self.clock() + timedelta(hours=self.expire_hours)
        )
