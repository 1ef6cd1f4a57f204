"""Argon2id password hashing."""

from functools import lru_cache

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from posauth.core import settings
from posauth.services.errors import PasswordHashError


@lru_cache
def get_password_hasher() -> PasswordHasher:
    """Build the process-wide hasher from the configured cost parameters."""
    return PasswordHasher(
        time_cost=settings.password_hash_time_cost,
        memory_cost=settings.password_hash_memory_cost,
        parallelism=settings.password_hash_parallelism,
        hash_len=32,
        salt_len=16,
    )


def hash_password(password: str) -> str:
    """Hash a password using Argon2id with a fresh random salt."""
    return get_password_hasher().hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash using constant-time comparison.

    Returns False on mismatch. Raises PasswordHashError if the stored hash
    cannot be parsed, since that is corrupted data rather than a wrong password.
    """
    try:
        return get_password_hasher().verify(password_hash, password)
    except VerifyMismatchError:
        return False
    except (InvalidHashError, VerificationError) as e:
        raise PasswordHashError("Stored password hash is malformed") from e


@lru_cache
def _dummy_hash() -> str:
    return hash_password("posauth-timing-equalizer")


def burn_verification_time(password: str) -> None:
    """Run a throwaway verification so unknown usernames cost as much as known ones."""
    verify_password(password, _dummy_hash())
