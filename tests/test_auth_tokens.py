"""Tests for bearer token creation and actor resolution."""
import pytest
import time
from datetime import timedelta
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt, JWTError


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestJWTTokens:
    """Test JWT access token behavior."""

    def test_access_token_decode(self):
        """Access token should be decodable with correct secret."""
        from yarrow.api.deps import create_access_token
        from yarrow.config import settings
        token = create_access_token(data={"sub": "tenant-42", "role": "tenant"})
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        assert payload["sub"] == "tenant-42"
        assert payload["role"] == "tenant"
        assert "exp" in payload

    def test_access_token_expiry(self):
        """Access token should expire after ACCESS_TOKEN_EXPIRE_MINUTES."""
        from yarrow.api.deps import create_access_token
        from yarrow.config import settings
        token = create_access_token(data={"sub": "1"})
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        expected = settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
        assert expected - 300 < (payload["exp"] - time.time()) < expected + 300

    def test_access_token_custom_expiry(self):
        from yarrow.api.deps import create_access_token
        from yarrow.config import settings
        token = create_access_token(data={"sub": "1"}, expires_delta=timedelta(minutes=30))
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        assert 1700 < (payload["exp"] - time.time()) < 1900

    def test_wrong_secret_fails(self):
        """Token decoded with wrong secret should fail."""
        from yarrow.api.deps import create_access_token
        token = create_access_token(data={"sub": "1"})
        with pytest.raises(JWTError):
            jwt.decode(token, "wrong-secret-key", algorithms=["HS256"])


class TestCurrentActor:
    """Tests for get_current_actor."""

    @pytest.mark.asyncio
    async def test_actor_from_claims(self):
        from yarrow.api.deps import create_access_token, get_current_actor
        token = create_access_token(data={"sub": "agent-7", "role": "agent", "agency_id": "ag-1"})
        actor = await get_current_actor(bearer(token))
        assert actor.id == "agent-7"
        assert actor.role == "agent"
        assert actor.agency_id == "ag-1"

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        from yarrow.api.deps import get_current_actor
        with pytest.raises(HTTPException) as exc_info:
            await get_current_actor(None)
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_expired_token(self):
        from yarrow.api.deps import create_access_token, get_current_actor
        token = create_access_token(data={"sub": "1"}, expires_delta=timedelta(minutes=-5))
        with pytest.raises(HTTPException) as exc_info:
            await get_current_actor(bearer(token))
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_unknown_role_rejected(self):
        from yarrow.api.deps import create_access_token, get_current_actor
        token = create_access_token(data={"sub": "1", "role": "superhero"})
        with pytest.raises(HTTPException):
            await get_current_actor(bearer(token))
