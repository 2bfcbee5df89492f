"""Human-readable booking reference numbers."""

import secrets
import string

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def generate_reference_number(prefix: str = "BK", length: int = 8) -> str:
    """Generate a reference such as ``BK-7Q2M4XKD``."""
    code = ''.join(secrets.choice(REFERENCE_ALPHABET) for _ in range(length))
    return f"{prefix}-{code}"
