"""
JWT session adapter - Implements SessionIssuer protocol with PyJWT.

Claims: sub (account id), email, role, iat, exp. One validity window
applies to every session, whether issued after verification, login, or
external sign-in.
"""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import jwt

from src.domain.exceptions import InvalidCredential
from src.domain.models import Account, Role, SessionClaims

_REQUIRED_CLAIMS = ["sub", "email", "role", "exp", "iat"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JwtSessionIssuer:
    """
    Implements SessionIssuer protocol via HMAC-signed JWTs.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        ttl: timedelta = timedelta(days=30),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret_key:
            raise ValueError("JWT secret key must not be empty")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._ttl = ttl
        self._clock = clock

    def issue(self, account: Account) -> str:
        now = self._clock()
        payload = {
            "sub": str(account.id),
            "email": account.email,
            "role": account.role.value,
            "iat": now,
            "exp": now + self._ttl,
        }
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> SessionClaims:
        """
        Raises:
            InvalidCredential: Malformed, wrong signature, expired, or missing claims
        """
        if not token or not isinstance(token, str):
            raise InvalidCredential("Empty session token")
        try:
            payload = jwt.decode(
                token.strip(),
                self._secret_key,
                algorithms=[self._algorithm],
                options={"require": _REQUIRED_CLAIMS},
            )
            role = Role(payload["role"])
        except jwt.ExpiredSignatureError as e:
            raise InvalidCredential("Session expired") from e
        except jwt.PyJWTError as e:
            raise InvalidCredential(f"Invalid session token: {e}") from e
        except ValueError as e:
            raise InvalidCredential("Invalid role claim") from e

        return SessionClaims(account_id=payload["sub"], email=payload["email"], role=role)
