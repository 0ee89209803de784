"""
Input sanitation shared by the JSON routes.

Every free-text value arriving over HTTP is stripped of markup with bleach
and cut to the configured maximum length before a service sees it.
"""

from typing import Any, Optional

import bleach

from core.exceptions import BillingInputError


def sanitize_text(text: Any, max_length: Optional[int] = None) -> str:
    """Sanitize user input text."""
    if not text:
        return ""
    text = bleach.clean(str(text).strip(), tags=[], strip=True)
    if max_length and len(text) > max_length:
        text = text[:max_length]
    return text


def sanitize_fields(value: Any, max_length: Optional[int] = None) -> Any:
    """Apply sanitize_text to every string in a nested dict/list tree."""
    if isinstance(value, str):
        return sanitize_text(value, max_length)
    if isinstance(value, dict):
        return {key: sanitize_fields(item, max_length) for key, item in value.items()}
    if isinstance(value, list):
        return [sanitize_fields(item, max_length) for item in value]
    return value


def optional_int(payload: dict, key: str) -> Optional[int]:
    """
    Read an optional integer field such as ``expectedVersion``.

    Raises:
        BillingInputError: the field is present but not an integer
    """
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        raise BillingInputError(f"{key} must be an integer", details={key: value})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BillingInputError(f"{key} must be an integer", details={key: value})
