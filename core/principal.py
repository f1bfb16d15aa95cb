"""
Principal and credential types.

Inbound auth evidence is one of two credential shapes; both resolve to the
same ResolvedPrincipal, which is the only identity type handlers see.
"""
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class OAuthPrincipal:
    """Verified Clerk session: the token's subject claim."""

    subject: str


@dataclass(frozen=True)
class ApiKeySecret:
    """Plaintext API key presented as a bearer token."""

    token: str

    def __repr__(self) -> str:
        # Never echo the secret into logs or tracebacks
        return "ApiKeySecret(token=***)"


Credential = Union[OAuthPrincipal, ApiKeySecret]


@dataclass(frozen=True)
class ResolvedPrincipal:
    """Authenticated identity: internal user id and admin flag."""

    user_id: str
    is_admin: bool = False
