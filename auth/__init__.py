"""Authentication module using signed JWT bearer tokens.

This module provides:
1. Identity resolution from bearer tokens (IdentitySessionProvider)
2. Token issuing for sessions created by the account service
3. FastAPI dependency for protecting routes
"""

import logging
import secrets
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Request, HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt
from pydantic import BaseModel, ConfigDict

from config import settings_conf

# Configure logging
logger = logging.getLogger(__name__)

# Constants
SESSION_EXPIRY_DAYS = settings_conf['session_expiry_days']
JWT_SECRET = settings_conf['jwt_secret'] or secrets.token_urlsafe(32)  # Random secret per process when unset
JWT_ALGORITHM = settings_conf['jwt_algorithm']
ROLES = ('user', 'moderator', 'admin')

class AuthError(Exception):
    """Base exception for authentication errors."""
    pass

class UnauthenticatedError(AuthError):
    """Raised when a request carries no valid identity."""
    pass

class SessionExpiredError(UnauthenticatedError):
    """Raised when a session token has expired."""
    pass

class Identity(BaseModel):
    """The user behind a request."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    role: str = 'user'

class IdentitySessionProvider(ABC):
    """Resolves request credentials to an identity."""

    @abstractmethod
    async def resolve(self, credentials: Optional[str]) -> Identity:
        """Resolve a bearer credential.

        Raises:
            UnauthenticatedError: If the credential is missing, invalid or expired
        """

class JWTSessionProvider(IdentitySessionProvider):
    """Validates HS256 session tokens carrying sub, role and exp claims."""

    def __init__(
        self,
        secret: Optional[str] = None,
        algorithm: Optional[str] = None,
        expiry_days: Optional[int] = None
    ):
        """Initialize the provider.

        Args:
            secret: Signing secret. Defaults to the configured jwt_secret.
            algorithm: Signing algorithm. Defaults to the configured jwt_algorithm.
            expiry_days: Lifetime of issued tokens. Defaults to session_expiry_days.
        """
        self.secret = secret or JWT_SECRET
        self.algorithm = algorithm or JWT_ALGORITHM
        self.expiry_days = expiry_days or SESSION_EXPIRY_DAYS

    def issue_token(
        self,
        user_id: str,
        role: str = 'user',
        expires_in: Optional[timedelta] = None
    ) -> str:
        """Create a signed session token.

        Args:
            user_id: Subject of the token
            role: Account role (user, moderator or admin)
            expires_in: Token lifetime, session_expiry_days if not given

        Returns:
            The encoded token
        """
        if role not in ROLES:
            raise AuthError(f"Unknown role: {role}")
        expires_at = datetime.now(timezone.utc) + (expires_in or timedelta(days=self.expiry_days))
        return jwt.encode(
            {
                'sub': user_id,
                'role': role,
                'exp': int(expires_at.timestamp())
            },
            self.secret,
            algorithm=self.algorithm
        )

    async def resolve(self, credentials: Optional[str]) -> Identity:
        if not credentials:
            raise UnauthenticatedError("No active session")

        try:
            payload = jwt.decode(credentials, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            raise SessionExpiredError("Session has expired")
        except jwt.JWTError as e:
            raise UnauthenticatedError(f"Invalid token: {str(e)}")

        user_id = payload.get('sub')
        if not user_id:
            raise UnauthenticatedError("Token has no subject")
        role = payload.get('role', 'user')
        if role not in ROLES:
            raise UnauthenticatedError(f"Token has unknown role: {role}")
        return Identity(user_id=user_id, role=role)

# FastAPI security scheme
auth_scheme = HTTPBearer(
    auto_error=False,  # Missing tokens are reported as 401 below
    description="JWT Bearer token required"
)

async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)
) -> Identity:
    """FastAPI dependency for getting the authenticated user.

    Uses the provider installed on app.state.identity_provider.

    Args:
        request: The FastAPI request
        credentials: Bearer token credentials

    Returns:
        The authenticated identity

    Raises:
        HTTPException: If authentication fails
    """
    provider: IdentitySessionProvider = request.app.state.identity_provider
    try:
        return await provider.resolve(credentials.credentials if credentials else None)
    except SessionExpiredError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "unauthenticated", "message": "Session has expired"},
            headers={"WWW-Authenticate": "Bearer"}
        )
    except AuthError as e:
        logger.debug(f"Rejected credentials: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "unauthenticated", "message": str(e)},
            headers={"WWW-Authenticate": "Bearer"}
        )

# Export public interface
__all__ = [
    'AuthError',
    'UnauthenticatedError',
    'SessionExpiredError',
    'Identity',
    'IdentitySessionProvider',
    'JWTSessionProvider',
    'get_current_user',
    'auth_scheme',
    'ROLES',
]
