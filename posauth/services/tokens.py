"""Signed, time-bounded bearer tokens (JWT)."""

import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from typing import Any
from uuid import UUID

import jwt
from jwt.exceptions import PyJWTError

from posauth.core import settings
from posauth.models.user import Role

REQUIRED_CLAIMS = ["sub", "exp", "iat", "jti"]


class TokenError(Exception):
    """JWT token error."""

    pass


class TokenExpiredError(TokenError):
    """JWT token has expired."""

    pass


class InvalidSignatureError(TokenError):
    """JWT signature does not match the server secret."""

    pass


class MalformedTokenError(TokenError):
    """Token is structurally invalid or carries unusable claims."""

    pass


@dataclass(frozen=True)
class TokenClaims:
    user_id: UUID
    username: str
    role: Role
    issued_at: datetime
    expires_at: datetime
    jti: str


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TokenIssuer:
    """Issues and verifies HMAC-signed access tokens.

    The signing secret is supplied by the caller and never read from global
    state, so tests and alternate deployments can run issuers side by side.
    ``clock`` only drives issuance; expiry is checked against wall time.
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        default_ttl: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = _utcnow,
    ):
        if not secret_key:
            raise ValueError("Token signing secret must not be empty")
        if default_ttl <= timedelta(0):
            raise ValueError("Token TTL must be positive")
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._clock = clock
        self.default_ttl = default_ttl

    def issue(
        self,
        user_id: UUID,
        username: str,
        role: Role | int,
        ttl: timedelta | None = None,
    ) -> str:
        """Create a signed token carrying the user's identity claims."""
        ttl = self.default_ttl if ttl is None else ttl
        if ttl <= timedelta(0):
            raise ValueError("Token TTL must be positive")

        now = self._clock()
        payload = {
            "sub": str(user_id),
            "username": username,
            "role": int(role),
            "iat": now,
            "exp": now + ttl,
            # Distinguishes tokens minted for the same user in the same second
            "jti": secrets.token_hex(16),
        }
        token = jwt.encode(payload, self._secret_key, algorithm=self._algorithm)
        return str(token)

    def verify(self, token: str) -> TokenClaims:
        """Validate signature and expiry and return the token's claims.

        Never returns a partial claim set: every anomaly raises a TokenError.
        """
        if not token or token.count(".") != 2:
            raise MalformedTokenError("Token must have three segments")

        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError("Token has expired") from e
        except jwt.InvalidSignatureError as e:
            raise InvalidSignatureError("Token signature verification failed") from e
        except PyJWTError as e:
            raise MalformedTokenError(f"Invalid token: {e}") from e

        return _claims_from_payload(payload)

    def decode_unsafe(self, token: str) -> dict[str, Any] | None:
        """Read claims without checking signature or expiry.

        Only for bookkeeping (e.g. learning a token's natural expiry before
        revoking it); never use the result for an authorization decision.
        """
        try:
            return jwt.decode(
                token,
                options={"verify_signature": False, "verify_exp": False},
            )
        except PyJWTError:
            return None

    def natural_expiry(self, token: str) -> datetime | None:
        """Return the token's embedded expiry as an aware datetime, if readable."""
        payload = self.decode_unsafe(token)
        if not payload or not isinstance(payload.get("exp"), int | float):
            return None
        return datetime.fromtimestamp(payload["exp"], tz=UTC)


def _claims_from_payload(payload: dict[str, Any]) -> TokenClaims:
    try:
        user_id = UUID(payload["sub"])
        role = Role(payload.get("role"))
    except (AttributeError, TypeError, ValueError) as e:
        raise MalformedTokenError(f"Invalid token claims: {e}") from e

    username = payload.get("username")
    if not isinstance(username, str) or not username:
        raise MalformedTokenError("Token missing username claim")

    return TokenClaims(
        user_id=user_id,
        username=username,
        role=role,
        issued_at=datetime.fromtimestamp(payload["iat"], tz=UTC),
        expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
        jti=str(payload["jti"]),
    )


@lru_cache
def get_token_issuer() -> TokenIssuer:
    """Process-wide issuer built once from settings."""
    return TokenIssuer(
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        default_ttl=timedelta(minutes=settings.jwt_access_token_expire_minutes),
    )
