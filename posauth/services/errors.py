"""Exception hierarchy shared by the credential store, ledger and gate.

Callers branch on these types only; storage driver exceptions never escape
the store and ledger abstractions.
"""

from dataclasses import dataclass


class AuthError(Exception):
    """Base authentication error."""

    pass


@dataclass(frozen=True)
class FieldError:
    """A single field-level validation message."""

    field: str
    message: str


class ValidationError(AuthError):
    """Input failed shape, range or charset checks."""

    def __init__(self, errors: list[FieldError]):
        self.errors = errors
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in errors))


class DuplicateUsernameError(AuthError):
    """Login name is already taken."""

    pass


class InvalidIdentifierError(AuthError):
    """A user identifier is not a well-formed UUID."""

    pass


class InvalidCredentialsError(AuthError):
    """Invalid username or password."""

    pass


class UserInactiveError(AuthError):
    """Login attempted against a deactivated account."""

    pass


class NotAuthenticatedError(AuthError):
    """The request carries no usable identity.

    ``reason`` records which check failed for logging; it is never returned
    to the client.
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Not authenticated: {reason}")


class ForbiddenError(AuthError):
    """Identity is valid but may not perform the request."""

    pass


class AccountDisabledError(ForbiddenError):
    pass


class InsufficientRoleError(ForbiddenError):
    pass


class StoreError(AuthError):
    """Persistence layer failed; never to be reported as an auth failure."""

    pass


class PasswordHashError(AuthError):
    """A stored password hash is malformed (data-integrity fault)."""

    pass
