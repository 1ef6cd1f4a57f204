"""FastAPI dependencies that put the authentication gate in front of routes.

Usage::

    @router.get("/staff")
    async def list_staff(identity: Identity = Depends(require_admin)): ...
"""

import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from posauth.core import get_db
from posauth.core.request_utils import get_client_ip
from posauth.models.user import Role
from posauth.services.errors import ForbiddenError, NotAuthenticatedError
from posauth.services.gate import AuthenticationGate, Identity, authorize
from posauth.services.revocation import RevocationLedger
from posauth.services.tokens import TokenIssuer, get_token_issuer
from posauth.services.users import UserStore

logger = logging.getLogger(__name__)

# One message for every token failure so callers cannot tell which check tripped
INVALID_TOKEN_DETAIL = "Invalid or expired token"
MISSING_TOKEN_DETAIL = "Authentication required"


async def _run_gate(
    request: Request, db: AsyncSession, issuer: TokenIssuer, allow_revoked: bool = False
) -> Identity:
    gate = AuthenticationGate(issuer, UserStore(db), RevocationLedger(db))
    try:
        identity = await gate.authenticate(
            request.headers.get("Authorization"), allow_revoked=allow_revoked
        )
    except NotAuthenticatedError as e:
        logger.warning(
            f"Authentication failed ({e.reason}): {request.method} {request.url.path} "
            f"from {get_client_ip(request)}"
        )
        detail = (
            MISSING_TOKEN_DETAIL
            if e.reason in ("missing_token", "malformed_header")
            else INVALID_TOKEN_DETAIL
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
    except ForbiddenError as e:
        logger.warning(f"Deactivated account rejected: {request.method} {request.url.path}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from e

    request.state.identity = identity
    return identity


async def get_current_identity(
    request: Request,
    db: AsyncSession = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> Identity:
    """Dependency to authenticate the request and attach the caller's identity.

    StoreError is left to the application exception handler (503).
    """
    return await _run_gate(request, db, issuer)


async def get_logout_identity(
    request: Request,
    db: AsyncSession = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
) -> Identity:
    """Like get_current_identity, but an already revoked token still passes."""
    return await _run_gate(request, db, issuer, allow_revoked=True)


def require_role(*roles: Role):
    """Build a dependency that passes only callers holding one of ``roles``."""

    async def _require_role(identity: Identity = Depends(get_current_identity)) -> Identity:
        try:
            return authorize(identity, roles)
        except ForbiddenError as e:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from e

    return _require_role


require_admin = require_role(Role.ADMIN)
