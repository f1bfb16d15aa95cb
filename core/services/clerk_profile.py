"""Clerk profile lookup used when auto-provisioning OAuth users."""
import logging
from dataclasses import dataclass
from typing import Optional

from clerk_backend_api import Clerk

from core.config import settings

logger = logging.getLogger(__name__)


class ProfileFetchError(Exception):
    """Clerk profile could not be fetched."""
    pass


@dataclass(frozen=True)
class ExternalProfile:
    subject: str
    email: str


class ClerkProfileFetcher:
    """Given a Clerk user id, return the user's primary email address."""

    def __init__(self, secret_key: Optional[str] = None):
        self.secret_key = secret_key or settings.CLERK_SECRET_KEY

    async def fetch(self, subject: str) -> ExternalProfile:
        if not self.secret_key:
            raise ProfileFetchError("CLERK_SECRET_KEY not configured")

        try:
            clerk = Clerk(bearer_auth=self.secret_key)
            user = await clerk.users.get_async(user_id=subject)
        except Exception as e:
            raise ProfileFetchError(f"Clerk user lookup failed: {e}") from e

        return ExternalProfile(subject=subject, email=_primary_email(user, subject))


def _primary_email(user, subject: str) -> str:
    """Primary address if marked, else the first one, else a placeholder."""
    addresses = getattr(user, "email_addresses", None) or []
    primary_id = getattr(user, "primary_email_address_id", None)

    for address in addresses:
        if primary_id and getattr(address, "id", None) == primary_id:
            return address.email_address
    if addresses:
        return addresses[0].email_address

    logger.warning("Clerk user %s has no email address, using placeholder", subject)
    return f"{subject}@clerk.user"
