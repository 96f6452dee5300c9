"""Identifier generation."""

import secrets
import string

from ulid import ULID


LEAD_CODE_ALPHABET = string.ascii_uppercase + string.digits
LEAD_CODE_LENGTH = 8


def generate_id() -> str:
    """Generate a text-based record ID (ULID format)."""
    return str(ULID())


def generate_lead_code() -> str:
    """Generate the 8-character human-facing lead code."""
    return "".join(secrets.choice(LEAD_CODE_ALPHABET) for _ in range(LEAD_CODE_LENGTH))
