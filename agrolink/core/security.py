import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from agrolink.core.config import settings
from agrolink.models.auth import TokenData


# Tokens are issued by the platform's authentication service; this service
# only needs to verify them. Issuing is kept for tooling and tests.
def create_access_token(user_id: uuid.UUID, expires_delta: Optional[timedelta] = None) -> str:
    expires_delta = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    to_encode = {
        "sub": str(user_id),
        "exp": datetime.now(timezone.utc) + expires_delta,
        "type": "access"
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.access_token_algorithm)


def verify_access_token(token: str) -> Optional[TokenData]:
    try:
        payload = jwt.decode(token, settings.secret_key,
                             algorithms=[settings.access_token_algorithm])
        user_id = payload.get("sub")
        token_type = payload.get("type")

        if not user_id or token_type != "access":
            return None

        return TokenData(user_id=uuid.UUID(user_id))
    except (jwt.PyJWTError, ValueError):
        return None
