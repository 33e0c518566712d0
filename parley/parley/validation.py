import logging

from .errors import ValidationError

TEXT_LIMIT = 4000
NAME_LIMIT = 100
AUTHOR_LIMIT = 100


def require_text(value: object, field: str, limit: int = TEXT_LIMIT) -> str:
    """Return ``value`` as a string, rejecting missing, blank or oversized input.

    The text itself is kept as submitted; only the emptiness check ignores
    surrounding whitespace.
    """
    if value is None:
        raise ValidationError(f"{field} required")
    text = value if isinstance(value, str) else str(value)
    if not text.strip():
        raise ValidationError(f"{field} required")
    if len(text) > limit:
        logging.warning("%s exceeds %d characters", field, limit)
        raise ValidationError(f"{field} too long")
    return text


def require_name(value: object, field: str = "name", limit: int = NAME_LIMIT) -> str:
    """Like :func:`require_text` but trims the result."""
    return require_text(value, field, limit).strip()


def optional_name(value: object, default: str, field: str, limit: int = AUTHOR_LIMIT) -> str:
    if value is None or not str(value).strip():
        return default
    return require_name(value, field, limit)
