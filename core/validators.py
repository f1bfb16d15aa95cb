"""Input validation for context keys, content, users and API key names.

Validators raise InvalidInputError; nothing is ever truncated to fit.
"""
import re
from typing import Any, Optional

from core.constants import (
    API_KEY_NAME_PATTERN,
    EMAIL_PATTERN,
    KEY_PATTERN,
    MAX_API_KEY_NAME_LENGTH,
    MAX_CONTENT_BYTES,
    MAX_EMAIL_LENGTH,
    MAX_KEY_LENGTH,
    MAX_USER_ID_LENGTH,
    USER_ID_PATTERN,
)
from core.errors import InvalidInputError

_KEY_RE = re.compile(KEY_PATTERN)
_USER_ID_RE = re.compile(USER_ID_PATTERN)
_EMAIL_RE = re.compile(EMAIL_PATTERN)
_API_KEY_NAME_RE = re.compile(API_KEY_NAME_PATTERN)

LIKE_ESCAPE_CHAR = "\\"


def validate_key(key: Any) -> str:
    """Validate a context key: alphanumeric, dash, underscore or dot, max 255 chars."""
    if not isinstance(key, str):
        raise InvalidInputError("Key is required and must be a string")
    if len(key) == 0:
        raise InvalidInputError("Key cannot be empty")
    if len(key) > MAX_KEY_LENGTH:
        raise InvalidInputError(f"Key exceeds maximum length of {MAX_KEY_LENGTH} characters")
    if not _KEY_RE.fullmatch(key):
        raise InvalidInputError("Key must contain only alphanumeric characters, dashes, underscores, or dots")
    return key


def validate_content(content: Any) -> str:
    """Validate content size in UTF-8 bytes (max 100KB)."""
    if content is None:
        raise InvalidInputError("Content is required")
    if not isinstance(content, str):
        raise InvalidInputError("Content must be a string")
    if len(content.encode("utf-8")) > MAX_CONTENT_BYTES:
        raise InvalidInputError(
            f"Content exceeds maximum size of {MAX_CONTENT_BYTES} bytes ({MAX_CONTENT_BYTES // 1024}KB)"
        )
    return content


def clamp_limit(limit: Any, max_limit: int, default_limit: int) -> int:
    """Clamp a limit into [1, max_limit]; non-integers fall back to the default."""
    if limit is None or isinstance(limit, bool):
        return default_limit
    if isinstance(limit, float) and limit.is_integer():
        limit = int(limit)
    if not isinstance(limit, int):
        return default_limit
    return min(max(1, limit), max_limit)


def escape_like(search: str) -> str:
    """Escape LIKE/ILIKE wildcards so the search string matches literally."""
    return (
        search.replace(LIKE_ESCAPE_CHAR, LIKE_ESCAPE_CHAR * 2)
        .replace("%", LIKE_ESCAPE_CHAR + "%")
        .replace("_", LIKE_ESCAPE_CHAR + "_")
    )


def validate_search(search: Any) -> Optional[str]:
    if search is None or search == "":
        return None
    if not isinstance(search, str):
        raise InvalidInputError("Search must be a string")
    if len(search) > MAX_KEY_LENGTH:
        raise InvalidInputError(f"Search exceeds maximum length of {MAX_KEY_LENGTH} characters")
    return search


def validate_user_id(user_id: Any) -> str:
    if not isinstance(user_id, str):
        raise InvalidInputError("User ID is required and must be a string")
    if len(user_id) == 0:
        raise InvalidInputError("User ID cannot be empty")
    if len(user_id) > MAX_USER_ID_LENGTH:
        raise InvalidInputError(f"User ID exceeds maximum length of {MAX_USER_ID_LENGTH} characters")
    if not _USER_ID_RE.fullmatch(user_id):
        raise InvalidInputError("User ID must contain only alphanumeric characters, dashes, or underscores")
    return user_id


def validate_email(email: Any) -> str:
    if not isinstance(email, str):
        raise InvalidInputError("Email is required and must be a string")
    if len(email) == 0:
        raise InvalidInputError("Email cannot be empty")
    if len(email) > MAX_EMAIL_LENGTH:
        raise InvalidInputError(f"Email exceeds maximum length of {MAX_EMAIL_LENGTH} characters")
    if not _EMAIL_RE.fullmatch(email):
        raise InvalidInputError("Invalid email format")
    return email


def validate_api_key_name(name: Any) -> str:
    """Validate an API key label. Leading/trailing whitespace is stripped."""
    if not isinstance(name, str):
        raise InvalidInputError("API key name is required and must be a string")
    name = name.strip()
    if len(name) == 0:
        raise InvalidInputError("API key name cannot be empty")
    if len(name) > MAX_API_KEY_NAME_LENGTH:
        raise InvalidInputError(
            f"API key name exceeds maximum length of {MAX_API_KEY_NAME_LENGTH} characters"
        )
    if not _API_KEY_NAME_RE.fullmatch(name):
        raise InvalidInputError(
            "API key name must contain only alphanumeric characters, spaces, dashes, or underscores"
        )
    return name
