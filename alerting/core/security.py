"""
Bearer token handling.

Access tokens are issued by the identity provider; this service only
verifies them and reads the subject. The raw token is forwarded to the
authorization gateway for permission checks.
"""

from typing import Any

from jose import JWTError, jwt

from alerting.core.config import settings


def verify_token(token: str) -> dict[str, Any] | None:
    """
    Decode and verify a JWT token.

    Args:
        token: The JWT string to verify

    Returns:
        The decoded payload if valid, None if invalid or expired
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"verify_aud": False},
        )
        return payload
    except JWTError:
        return None


def get_token_subject(token: str) -> str | None:
    """
    Extract the subject (user id) from a token.

    Returns:
        The subject string if the token is valid, None otherwise
    """
    payload = verify_token(token)
    if payload is None:
        return None
    return payload.get("sub")
