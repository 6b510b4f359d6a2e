"""Short code generation and custom code validation."""

import re
import secrets
import string

from linktrack.core.errors import ValidationError

# Characters for random short code generation (base62)
SHORT_CODE_CHARS = string.ascii_uppercase + string.ascii_lowercase + string.digits
SHORT_CODE_LENGTH = 6
CUSTOM_CODE_MAX_LENGTH = 20

_CUSTOM_CODE_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def generate_short_code(length: int = SHORT_CODE_LENGTH) -> str:
    """Generate a random short code using base62 characters."""
    return "".join(secrets.choice(SHORT_CODE_CHARS) for _ in range(length))


def validate_custom_code(code: str) -> str:
    """Validate a caller-supplied short code and return it trimmed.

    Availability is not checked here; the store decides that on insert.
    """
    code = code.strip()
    if not code:
        raise ValidationError("Custom code cannot be empty")
    if len(code) > CUSTOM_CODE_MAX_LENGTH:
        raise ValidationError(
            f"Custom code cannot be longer than {CUSTOM_CODE_MAX_LENGTH} characters"
        )
    if not _CUSTOM_CODE_RE.match(code):
        raise ValidationError(
            "Custom code can only contain letters, numbers, hyphens and underscores"
        )
    return code
