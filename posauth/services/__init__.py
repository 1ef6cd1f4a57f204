# posauth Services
from posauth.services.auth import AuthService, LoginResult
from posauth.services.gate import AuthenticationGate, Identity, authorize
from posauth.services.revocation import RevocationLedger, token_digest
from posauth.services.tokens import TokenClaims, TokenIssuer, get_token_issuer
from posauth.services.users import UserStore

__all__ = [
    "AuthService",
    "AuthenticationGate",
    "Identity",
    "LoginResult",
    "RevocationLedger",
    "TokenClaims",
    "TokenIssuer",
    "UserStore",
    "authorize",
    "get_token_issuer",
    "token_digest",
]
