import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from errors import Unauthenticated

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60


@dataclass(frozen=True)
class Claim:
    email: str
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


def bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    token = authorization.split(" ", 1)[1].strip()
    return token or None


class TokenService:
    """Stateless bearer tokens carrying only the caller's email."""

    def __init__(self, secret: str, expire_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES):
        self.secret = secret
        self.expires_delta = timedelta(minutes=expire_minutes)

    def issue(self, email: str) -> str:
        now = datetime.now(timezone.utc)
        to_encode = {"email": email, "iat": now, "exp": now + self.expires_delta}
        return jwt.encode(to_encode, self.secret, algorithm=ALGORITHM)

    def verify(self, token: Optional[str]) -> Claim:
        if not token:
            raise Unauthenticated()
        try:
            payload = jwt.decode(token, self.secret, algorithms=[ALGORITHM])
        except JWTError as e:
            logger.debug("Rejected token: %s", e)
            raise Unauthenticated()
        email = payload.get("email")
        if not email:
            raise Unauthenticated()
        return Claim(
            email=email,
            issued_at=_timestamp(payload.get("iat")),
            expires_at=_timestamp(payload.get("exp")),
        )


def _timestamp(value) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)
