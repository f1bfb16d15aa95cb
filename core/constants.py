"""
Application-wide constants.

These constants are used across the codebase for consistency and maintainability.
"""

# Context entry constraints
MAX_KEY_LENGTH = 255
KEY_PATTERN = r"^[a-zA-Z0-9_.\-]+$"
MAX_CONTENT_BYTES = 102400  # 100KB, measured in UTF-8 bytes

# list_context: metadata only
LIST_DEFAULT_LIMIT = 50
LIST_MAX_LIMIT = 200

# read_all_context: full content, so a lower ceiling
READ_ALL_DEFAULT_LIMIT = 20
READ_ALL_MAX_LIMIT = 50

HISTORY_DEFAULT_LIMIT = 10

# User constraints
MAX_USER_ID_LENGTH = 50
USER_ID_PATTERN = r"^[a-zA-Z0-9_\-]+$"
MAX_EMAIL_LENGTH = 254  # RFC 5321
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"

# API keys
API_KEY_BYTES = 32
MAX_API_KEY_NAME_LENGTH = 100
API_KEY_NAME_PATTERN = r"^[a-zA-Z0-9_\- ]+$"
MAX_API_KEYS_PER_USER = 10
DEFAULT_API_KEY_NAME = "default"
BOOTSTRAP_API_KEY_NAME = "primary"

# Auth providers recorded on users.auth_provider
AUTH_PROVIDER_CLERK = "clerk"
AUTH_PROVIDER_MANUAL = "manual"

# Header carrying the MCP session id on the streamable HTTP transport
MCP_SESSION_HEADER = "mcp-session-id"
MCP_PROTOCOL_VERSION = "2025-03-26"
SUPPORTED_PROTOCOL_VERSIONS = ("2024-11-05", "2025-03-26", "2025-06-18")
SERVER_VERSION = "1.0.0"
