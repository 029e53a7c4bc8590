"""
Security module for the datekey gateway.

Provides input validation for the message dispatch payload and client
identification for audit logging.
"""

import re
from typing import Any, Dict, List, Optional

# Regex patterns for validation
EMAIL_PATTERN = re.compile(r'^[^@\s<>,;:]+@[^@\s<>,;:]+\.[^@\s<>,;:]+$')
HEADER_INJECTION_PATTERN = re.compile(r'[\r\n]')


class ValidationError(Exception):
    """Raised when input validation fails."""
    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


def validate_email_address(value: str, field_name: str = "to") -> str:
    """
    Validate a single email address.

    Returns:
        The stripped address

    Raises:
        ValidationError: If validation fails
    """
    if not isinstance(value, str):
        raise ValidationError(field_name, "must be a string")

    value = value.strip()

    if not value:
        raise ValidationError(field_name, "cannot be empty")

    if len(value) > 254 or not EMAIL_PATTERN.match(value):
        raise ValidationError(field_name, "must be a valid email address")

    return value


def validate_recipients(value: Any, field_name: str = "to") -> List[str]:
    """Accept one address, a comma-separated string, or a list of addresses."""
    if isinstance(value, str):
        parts = [p for p in value.split(",") if p.strip()]
    elif isinstance(value, (list, tuple)):
        parts = list(value)
    else:
        raise ValidationError(field_name, "must be a string or a list of strings")

    if not parts:
        raise ValidationError(field_name, "cannot be empty")

    return [validate_email_address(p, field_name) for p in parts]


def validate_header_value(value: str, field_name: str, max_length: int = 998) -> str:
    """
    Validate a value that ends up in a mail header (e.g. the subject).

    Raises:
        ValidationError: If the value is empty, too long, or contains newlines
    """
    if not isinstance(value, str):
        raise ValidationError(field_name, "must be a string")

    if not value.strip():
        raise ValidationError(field_name, "cannot be empty")

    if len(value) > max_length:
        raise ValidationError(field_name, f"must not exceed {max_length} characters")

    if HEADER_INJECTION_PATTERN.search(value):
        raise ValidationError(field_name, "must not contain line breaks")

    return value


# ============================================================
# Client identification
# ============================================================

def extract_client_id(headers: Dict[str, str], client_host: Optional[str] = None) -> str:
    """
    Extract a client identifier from request headers for audit correlation.
    Falls back to the socket peer, then to a default.
    """
    forwarded = headers.get("x-forwarded-for", "")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"

    if client_host:
        return f"ip:{client_host}"

    return "anonymous"

