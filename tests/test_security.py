"""
Tests for bearer token verification.

Tokens are issued elsewhere; these tests sign their own with python-jose
using the configured secret.
"""

from datetime import datetime, timedelta, timezone

from jose import jwt

from alerting.core.config import settings
from alerting.core.security import get_token_subject, verify_token


def make_token(claims: dict, secret: str = None) -> str:
    return jwt.encode(
        claims,
        secret or settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
    )


class TestVerifyToken:
    """Test JWT verification."""

    def test_valid_token(self):
        """A token signed with the configured secret should decode."""
        token = make_token({"sub": "user-1"})
        payload = verify_token(token)
        assert payload is not None
        assert payload["sub"] == "user-1"

    def test_wrong_secret(self):
        """Tokens signed with another key should be rejected."""
        token = make_token({"sub": "user-1"}, secret="someone-else")
        assert verify_token(token) is None

    def test_expired_token(self):
        expired = datetime.now(timezone.utc) - timedelta(minutes=5)
        token = make_token({"sub": "user-1", "exp": int(expired.timestamp())})
        assert verify_token(token) is None

    def test_garbage(self):
        assert verify_token("not.a.token") is None

    def test_audience_not_enforced(self):
        """Identity provider tokens carry an audience this service does not check."""
        token = make_token({"sub": "user-1", "aud": "account"})
        assert verify_token(token) is not None


class TestGetTokenSubject:
    def test_subject(self):
        assert get_token_subject(make_token({"sub": "user-1"})) == "user-1"

    def test_missing_subject(self):
        assert get_token_subject(make_token({"name": "x"})) is None

    def test_invalid_token(self):
        assert get_token_subject("invalid") is None
