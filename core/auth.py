import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt

from core.config import settings
from core.errors import (
    AuthenticationError,
    ErrorCode,
    ForbiddenError,
    InvalidCredentialError,
    UnauthorizedError,
)
from core.principal import ApiKeySecret, Credential, OAuthPrincipal, ResolvedPrincipal
from core.services.api_key_service import ApiKeyService
from core.services.clerk_profile import ClerkProfileFetcher, ProfileFetchError
from core.services.user_service import UserService, UserServiceError

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)

# JWKS cache with TTL
_jwks_cache: dict = {"data": None, "expires_at": None}
JWKS_CACHE_TTL = timedelta(hours=1)


async def _get_cached_jwks(jwks_url: str) -> dict:
    """Fetch JWKS with TTL-based caching to avoid hitting Clerk on every request."""
    now = datetime.now(timezone.utc)

    if _jwks_cache["data"] and _jwks_cache["expires_at"] and now < _jwks_cache["expires_at"]:
        return _jwks_cache["data"]

    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(jwks_url, timeout=10.0)
            response.raise_for_status()
            jwks = response.json()

        _jwks_cache["data"] = jwks
        _jwks_cache["expires_at"] = now + JWKS_CACHE_TTL
        logger.info("JWKS cache refreshed")
        return jwks
    except httpx.HTTPError as e:
        # Stale keys beat no keys while Clerk is unreachable
        if _jwks_cache["data"]:
            logger.warning("JWKS fetch failed, using stale cache: %s", e)
            return _jwks_cache["data"]
        raise


def _find_rsa_key(jwks: dict, kid: str) -> dict | None:
    """Find RSA key in JWKS by key ID."""
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return {
                "kty": key["kty"],
                "kid": key["kid"],
                "use": key.get("use", "sig"),
                "n": key["n"],
                "e": key["e"],
            }
    return None


def looks_like_jwt(token: str) -> bool:
    """Three non-empty dot-separated segments. API keys are base64url and carry no dots."""
    parts = token.split(".")
    return len(parts) == 3 and all(parts)


async def verify_clerk_token(token: str) -> OAuthPrincipal:
    """
    Verify a Clerk session JWT and return its subject.

    Raises:
        InvalidCredentialError: token rejected (expired, bad signature, bad claims)
        AuthenticationError: JWKS could not be fetched
    """
    if not settings.CLERK_ISSUER:
        raise InvalidCredentialError("OAuth tokens are not accepted by this server", ErrorCode.UNAUTHORIZED)

    jwks_url = f"{settings.CLERK_ISSUER}/.well-known/jwks.json"

    try:
        jwks = await _get_cached_jwks(jwks_url)

        unverified_header = jwt.get_unverified_header(token)
        rsa_key = _find_rsa_key(jwks, unverified_header.get("kid", ""))
        if not rsa_key:
            raise InvalidCredentialError("Invalid token headers", ErrorCode.UNAUTHORIZED)

        payload = jwt.decode(
            token,
            rsa_key,
            algorithms=["RS256"],
            audience=settings.CLERK_AUDIENCE,
            issuer=settings.CLERK_ISSUER,
            options={"verify_aud": settings.CLERK_AUDIENCE is not None},
        )
    except jwt.ExpiredSignatureError:
        raise InvalidCredentialError("Token expired", ErrorCode.UNAUTHORIZED)
    except jwt.JWTClaimsError:
        raise InvalidCredentialError("Invalid claims", ErrorCode.UNAUTHORIZED)
    except httpx.HTTPError as e:
        logger.error("Failed to fetch JWKS: %s", e)
        raise AuthenticationError("Authentication service unavailable")
    except InvalidCredentialError:
        raise
    except Exception as e:
        logger.warning("JWT validation error: %s", e)
        raise InvalidCredentialError("Could not validate credentials", ErrorCode.UNAUTHORIZED)

    subject = payload.get("sub")
    if not subject:
        raise InvalidCredentialError("Token has no subject", ErrorCode.UNAUTHORIZED)
    return OAuthPrincipal(subject=subject)


async def credential_from_bearer(token: str) -> Credential:
    """Classify a bearer token: verified Clerk JWT or opaque API key."""
    if looks_like_jwt(token):
        return await verify_clerk_token(token)
    return ApiKeySecret(token=token)


class PrincipalResolver:
    """
    Turns inbound credentials into a (user_id, is_admin) pair.

    OAuth subjects are auto-provisioned on first sight; API keys resolve
    through the credential store. Both paths land on the same user row
    type, so downstream code never branches on how the caller logged in.
    """

    def __init__(
        self,
        users: UserService,
        api_keys: ApiKeyService,
        profiles: Optional[ClerkProfileFetcher] = None,
        admin_email: Optional[str] = None,
    ):
        self.users = users
        self.api_keys = api_keys
        self.profiles = profiles or ClerkProfileFetcher()
        self.admin_email = admin_email.strip().lower() if admin_email else None

    async def resolve(self, credential: Optional[Credential]) -> Optional[ResolvedPrincipal]:
        """
        Returns:
            The principal, or None when the credential is absent or rejected

        Raises:
            AuthenticationError: provisioning failed (profile fetch, database)
        """
        if credential is None:
            return None

        if isinstance(credential, OAuthPrincipal):
            return await self._resolve_oauth(credential.subject)

        if isinstance(credential, ApiKeySecret):
            try:
                return await self.api_keys.lookup_by_key(credential.token)
            except Exception as e:
                logger.error("API key lookup failed: %s", e)
                raise AuthenticationError()

        raise TypeError(f"Unsupported credential type: {type(credential).__name__}")

    def is_admin_email(self, email: str) -> bool:
        return self.admin_email is not None and email.strip().lower() == self.admin_email

    async def _resolve_oauth(self, subject: str) -> ResolvedPrincipal:
        try:
            user = await self.users.get_by_external_id(subject)
            if user is None:
                profile = await self.profiles.fetch(subject)
                user = await self.users.provision_oauth_user(
                    subject=subject,
                    email=profile.email,
                    is_admin=self.is_admin_email(profile.email),
                )
        except (ProfileFetchError, UserServiceError) as e:
            logger.error("Failed to provision Clerk user %s: %s", subject, e)
            raise AuthenticationError()
        except AuthenticationError:
            raise
        except Exception as e:
            logger.error("Unexpected error resolving Clerk user %s: %s", subject, e)
            raise AuthenticationError()

        return ResolvedPrincipal(user_id=user.id, is_admin=bool(user.is_admin))


# =============================================================================
# FastAPI dependencies
# =============================================================================


def get_resolver(request: Request) -> PrincipalResolver:
    return request.app.state.resolver


async def authenticate_bearer(token: Optional[str], resolver: PrincipalResolver) -> ResolvedPrincipal:
    """
    Full bearer pipeline shared by REST and MCP.

    Raises:
        UnauthorizedError: no token
        InvalidCredentialError: token rejected
        AuthenticationError: resolver failure
    """
    if not token:
        raise UnauthorizedError("Authentication required. Provide a Bearer token or API key.")

    credential = await credential_from_bearer(token)
    principal = await resolver.resolve(credential)
    if principal is None:
        raise InvalidCredentialError("Invalid API key")
    return principal


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    resolver: PrincipalResolver = Depends(get_resolver),
) -> ResolvedPrincipal:
    """Resolve the bearer token on a REST request to a principal."""
    token = credentials.credentials if credentials else None
    return await authenticate_bearer(token, resolver)


async def require_admin(principal: ResolvedPrincipal = Depends(get_current_user)) -> ResolvedPrincipal:
    """Dependency that requires an admin principal."""
    if not principal.is_admin:
        raise ForbiddenError("Admin access required")
    return principal
