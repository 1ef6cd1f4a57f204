"""Authentication gate: the per-request identity pipeline.

Steps run in order and stop at the first failure:

1. extract the bearer token from the Authorization header
2. verify signature and expiry (pure, no I/O)
3. reject tokens present in the revocation ledger
4. load the account and reject unknown or deactivated ones
5. hand back an Identity for downstream handlers

Role checks (``authorize``) are a separate step applied per route.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from posauth.models.user import Role
from posauth.services.errors import (
    AccountDisabledError,
    InsufficientRoleError,
    NotAuthenticatedError,
)
from posauth.services.revocation import RevocationLedger
from posauth.services.tokens import (
    InvalidSignatureError,
    MalformedTokenError,
    TokenClaims,
    TokenExpiredError,
    TokenIssuer,
)
from posauth.services.users import UserStore

logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, attached to the request once the gate passes."""

    user_id: UUID
    username: str
    role: Role
    token: str
    claims: TokenClaims
    revoked: bool = False

    @property
    def role_name(self) -> str:
        return self.role.role_name


def extract_bearer_token(authorization: str | None) -> str:
    """Pull the token out of an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        raise NotAuthenticatedError("missing_token")
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != BEARER_SCHEME or not token or " " in token:
        raise NotAuthenticatedError("malformed_header")
    return token


class AuthenticationGate:
    """Runs the identity pipeline against one token issuer, store and ledger.

    StoreError from the ledger or the store propagates unchanged; an outage
    is a server fault, never "not authenticated".
    """

    def __init__(self, issuer: TokenIssuer, users: UserStore, ledger: RevocationLedger):
        self.issuer = issuer
        self.users = users
        self.ledger = ledger

    async def authenticate(
        self, authorization: str | None, *, allow_revoked: bool = False
    ) -> Identity:
        """Run the pipeline and return the caller's identity.

        ``allow_revoked`` lets a revoked but otherwise valid token through
        with ``Identity.revoked`` set; logout uses it so a repeated call
        succeeds instead of failing.
        """
        token = extract_bearer_token(authorization)

        try:
            claims = self.issuer.verify(token)
        except TokenExpiredError as e:
            raise NotAuthenticatedError("expired") from e
        except InvalidSignatureError as e:
            raise NotAuthenticatedError("invalid_signature") from e
        except MalformedTokenError as e:
            raise NotAuthenticatedError("malformed") from e

        revoked = await self.ledger.is_revoked(token)
        if revoked and not allow_revoked:
            raise NotAuthenticatedError("revoked")

        user = await self.users.get_by_id(claims.user_id)
        if user is None:
            raise NotAuthenticatedError("unknown_account")
        if not user.is_active:
            raise AccountDisabledError("User account is deactivated")

        # Role comes from the stored account so a demotion applies immediately
        return Identity(
            user_id=user.id,
            username=user.username,
            role=Role(user.role),
            token=token,
            claims=claims,
            revoked=revoked,
        )


def authorize(identity: Identity, allowed_roles: Iterable[Role]) -> Identity:
    """Check that the caller holds one of ``allowed_roles``."""
    allowed = set(allowed_roles)
    if identity.role not in allowed:
        logger.warning(
            f"Role {identity.role_name} denied for user {identity.username}; "
            f"requires one of {sorted(r.role_name for r in allowed)}"
        )
        raise InsufficientRoleError("Insufficient permissions")
    return identity
