"""ID and secret generators (CUID, temporary passwords)."""

import secrets
import string

from cuid2 import cuid_wrapper

cuid_generator = cuid_wrapper()

_PASSWORD_SPECIALS = "!@#$%^&*-_=+"


def generate_cuid() -> str:
    """Generate a collision-resistant unique identifier (CUID2).

    Returns:
        A new CUID string.
    """
    result = cuid_generator()
    if not isinstance(result, str):
        raise TypeError(
            f"Expected str from cuid_generator, got {type(result).__name__}"
        )
    return result


def generate_temporary_password(length: int = 16) -> str:
    """Generate a cryptographically secure password with guaranteed complexity.

    Used when a new identity is created without a caller-supplied password.
    Ensures at least one lowercase, one uppercase, one digit, and one
    special character; remaining positions are filled from the full
    alphabet, then shuffled.
    """
    if length < 4:
        raise ValueError("Password length must be at least 4")
    alphabet = string.ascii_letters + string.digits + _PASSWORD_SPECIALS
    rng = secrets.SystemRandom()
    chars = [
        rng.choice(string.ascii_lowercase),
        rng.choice(string.ascii_uppercase),
        rng.choice(string.digits),
        rng.choice(_PASSWORD_SPECIALS),
    ]
    chars.extend(rng.choice(alphabet) for _ in range(length - 4))
    rng.shuffle(chars)
    return "".join(chars)
