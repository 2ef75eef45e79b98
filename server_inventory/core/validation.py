"""
Input checks shared by the registries.

Bad shapes raise ValidationError; missing required values raise
ConstraintViolation. Both happen before anything reaches the gateway.
"""

import re
from typing import Any, Iterable, Mapping, Optional

from ..errors import ConstraintViolation, ValidationError

# local@domain.tld without whitespace
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def reject_unknown_fields(fields: Mapping[str, Any], allowed: Iterable[str], label: str) -> None:
    """Raise ValidationError if fields contains keys outside allowed."""
    unknown = set(fields) - set(allowed)
    if unknown:
        raise ValidationError(f"Unknown {label} fields: {sorted(unknown)}")


def require_text(value: Any, field: str, label: str) -> str:
    """Return a required, non-blank string field."""
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConstraintViolation(f"{label} requires: {field}", field)
    if not isinstance(value, str):
        raise ValidationError(f"'{field}' must be a string", field)
    return value


def optional_text(value: Any, field: str) -> Optional[str]:
    """Return an optional string field; None clears it."""
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"'{field}' must be a string", field)
    return value


def optional_id(value: Any, field: str) -> Optional[int]:
    """Return an optional foreign key id."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"'{field}' must be an integer id", field)
    return value


def optional_email(value: Any, field: str = "email") -> Optional[str]:
    """Return an optional email after a basic syntax check."""
    value = optional_text(value, field)
    if value is not None and not EMAIL_PATTERN.fullmatch(value):
        raise ValidationError(f"'{field}' must be a valid email address, got {value!r}", field)
    return value
