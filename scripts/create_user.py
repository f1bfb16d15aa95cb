#!/usr/bin/env python3
"""
Create a user with an initial API key.

The API key is printed ONCE. Save it immediately.

Usage:
    python scripts/create_user.py <user_id> <email>
    python scripts/create_user.py <user_id> <email> --key-name laptop --admin
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.constants import DEFAULT_API_KEY_NAME
from core.database import async_session_factory
from core.errors import InvalidInputError
from core.services.user_service import UserService
from core.validators import validate_api_key_name, validate_email, validate_user_id

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


async def create_user(
    user_id: str,
    email: str,
    key_name: str = DEFAULT_API_KEY_NAME,
    is_admin: bool = False,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> str:
    """Validate, create the user and key in one transaction, return the plaintext key."""
    user_id = validate_user_id(user_id)
    email = validate_email(email)
    key_name = validate_api_key_name(key_name)

    users = UserService(session_factory or async_session_factory)
    _, plain_key = await users.create_user(user_id, email, api_key_name=key_name, is_admin=is_admin)
    return plain_key


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Create a user with an initial API key")
    parser.add_argument("user_id", help="Alphanumeric, dashes and underscores, max 50 chars")
    parser.add_argument("email")
    parser.add_argument("--key-name", default=DEFAULT_API_KEY_NAME, help="Label for the first API key")
    parser.add_argument("--admin", action="store_true", help="Grant admin rights")
    args = parser.parse_args(argv)

    try:
        plain_key = asyncio.run(create_user(args.user_id, args.email, args.key_name, args.admin))
    except InvalidInputError as e:
        logger.error("Error: %s", e.message)
        return 1

    print("\n=== User created successfully! ===\n")
    print(f"User ID: {args.user_id}")
    print(f"Email: {args.email}")
    print("\nAPI Key (SAVE THIS - shown only once!):")
    print(f"\n  {plain_key}\n")
    print("Use it as a bearer token:")
    print("  curl -X POST http://localhost:8000/mcp \\")
    print(f'    -H "Authorization: Bearer {plain_key}" \\')
    print('    -H "Content-Type: application/json" \\')
    print('    -d \'{"jsonrpc":"2.0","id":1,"method":"initialize","params":{"protocolVersion":"2025-03-26"}}\'')
    return 0


if __name__ == "__main__":
    sys.exit(main())
