"""Passwords for the provisioning service account."""

import secrets
import string

SPECIAL = "!@#$%^&*"
ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits + SPECIAL


def generate_password(length: int = 16) -> str:
    """Random password with at least one upper, lower, digit and special char.

    Raises:
        ValueError: If length is below 8
    """
    if length < 8:
        raise ValueError("Password must be at least 8 characters")

    chars = [
        secrets.choice(string.ascii_uppercase),
        secrets.choice(string.ascii_lowercase),
        secrets.choice(string.digits),
        secrets.choice(SPECIAL),
    ]
    chars += [secrets.choice(ALPHABET) for _ in range(length - len(chars))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)
