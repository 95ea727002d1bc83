"""Authentication for the PhysioFit backend.

The backend never issues credentials. It only verifies access tokens
issued by Supabase Auth and reads the principal from their ``sub`` claim.
"""

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from physiofit.protocols import UnauthenticatedError

from .config import Settings, get_settings

# Make bearer optional to allow cookie fallback
security = HTTPBearer(auto_error=False)


class SupabaseIdentityResolver:
    """IdentityResolver for Supabase-issued access tokens (HS256 JWTs)."""

    def __init__(self, jwt_secret: str, algorithm: str = "HS256", audience: str | None = None):
        if not jwt_secret:
            raise ValueError("A JWT secret is required to verify access tokens")
        self._jwt_secret = jwt_secret
        self._algorithm = algorithm
        self._audience = audience

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseIdentityResolver":
        return cls(
            settings.supabase_jwt_secret,
            algorithm=settings.jwt_algorithm,
            audience=settings.jwt_audience or None,
        )

    def resolve(self, credential: str | None) -> str:
        """Return the principal (token subject) or raise UnauthenticatedError."""
        if not credential:
            raise UnauthenticatedError(
                "Not authenticated - provide Authorization header or auth cookie"
            )
        try:
            payload = jwt.decode(
                credential,
                self._jwt_secret,
                algorithms=[self._algorithm],
                audience=self._audience,
                options={"verify_aud": self._audience is not None},
            )
        except JWTError:
            raise UnauthenticatedError("Invalid or expired token")

        principal = payload.get("sub")
        if not principal or not isinstance(principal, str):
            raise UnauthenticatedError("Invalid token payload")
        return principal


def get_identity_resolver(
    settings: Annotated[Settings, Depends(get_settings)],
) -> SupabaseIdentityResolver:
    """FastAPI dependency for the identity resolver."""
    return SupabaseIdentityResolver.from_settings(settings)


async def get_credential(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
    request: Request,
) -> str | None:
    """Raw access token from the Authorization header, falling back to the auth cookie."""
    if credentials:
        return credentials.credentials
    return request.cookies.get(settings.auth_cookie_name)


async def get_current_principal(
    credential: Annotated[str | None, Depends(get_credential)],
    resolver: Annotated[SupabaseIdentityResolver, Depends(get_identity_resolver)],
) -> str:
    """Resolve the authenticated principal for endpoints outside the relay."""
    return resolver.resolve(credential)


# Type aliases for dependency injection
Credential = Annotated[str | None, Depends(get_credential)]
CurrentPrincipal = Annotated[str, Depends(get_current_principal)]
