import secrets

import bcrypt

from ..config import get_settings


def hash_password(password: str, *, rounds: int = 12) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def provision_credential() -> str:
    """
    Password hash for a customer created implicitly by a booking.
    Uses CUSTOMER_DEFAULT_PASSWORD when configured; otherwise a random secret
    nobody knows, so the account cannot log in until a password is set.
    """
    settings = get_settings()
    password = settings.customer_default_password or secrets.token_urlsafe(32)
    return hash_password(password, rounds=settings.password_hash_rounds)
