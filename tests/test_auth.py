"""Tests for JWT identity resolution."""

from datetime import timedelta

import pytest
from jose import jwt

from auth import (
    AuthError,
    Identity,
    JWTSessionProvider,
    SessionExpiredError,
    UnauthenticatedError,
)

SECRET = "test-secret"

@pytest.fixture
def provider() -> JWTSessionProvider:
    return JWTSessionProvider(secret=SECRET, algorithm="HS256", expiry_days=1)

@pytest.mark.asyncio
async def test_issued_token_resolves(provider):
    """Test a token round-trips to the same identity."""
    token = provider.issue_token("user-1", role="moderator")
    identity = await provider.resolve(token)
    assert identity == Identity(user_id="user-1", role="moderator")

@pytest.mark.asyncio
async def test_role_defaults_to_user(provider):
    """Test tokens without a role claim resolve as regular users."""
    token = jwt.encode({"sub": "user-2"}, SECRET, algorithm="HS256")
    identity = await provider.resolve(token)
    assert identity.role == "user"

@pytest.mark.asyncio
async def test_missing_credentials(provider):
    """Test an absent token is unauthenticated."""
    with pytest.raises(UnauthenticatedError):
        await provider.resolve(None)

@pytest.mark.asyncio
async def test_expired_token(provider):
    """Test an expired token is reported as such."""
    token = provider.issue_token("user-1", expires_in=timedelta(seconds=-10))
    with pytest.raises(SessionExpiredError):
        await provider.resolve(token)

@pytest.mark.asyncio
async def test_foreign_signature(provider):
    """Test a token signed with another secret is refused."""
    token = JWTSessionProvider(secret="other-secret").issue_token("user-1")
    with pytest.raises(UnauthenticatedError):
        await provider.resolve(token)

@pytest.mark.asyncio
async def test_bad_claims(provider):
    """Test tokens without a subject or with an unknown role are refused."""
    with pytest.raises(UnauthenticatedError):
        await provider.resolve(jwt.encode({"role": "user"}, SECRET, algorithm="HS256"))
    with pytest.raises(UnauthenticatedError):
        await provider.resolve(jwt.encode({"sub": "u", "role": "root"}, SECRET, algorithm="HS256"))

def test_issue_unknown_role(provider):
    """Test only known roles can be issued."""
    with pytest.raises(AuthError):
        provider.issue_token("user-1", role="superuser")
