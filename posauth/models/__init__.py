# posauth Models
from posauth.models.base import BaseModel
from posauth.models.token_blacklist import RevocationReason, TokenBlacklist
from posauth.models.user import Role, User

__all__ = [
    "BaseModel",
    "RevocationReason",
    "Role",
    "TokenBlacklist",
    "User",
]
