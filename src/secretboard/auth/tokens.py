"""Signed tokens for the session cookie and the OAuth state parameter.

Learn: These tokens carry no user data — a session token holds only a
random session id, a state token only a random nonce. The signature
(HS256 with settings.session_secret) stops a client from minting ids;
the "type" claim stops a state token from being replayed as a session.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

ALGORITHM = "HS256"

SESSION = "session"
OAUTH_STATE = "oauth_state"


class TokenError(Exception):
    """Raised when token verification fails."""


def create_token(
    secret: str,
    token_type: str,
    subject: Optional[str] = None,
    expires_seconds: Optional[int] = None,
) -> str:
    """Sign a token of token_type. subject defaults to a fresh random nonce."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject or secrets.token_urlsafe(16),
        "type": token_type,
        "iat": now,
    }
    if expires_seconds:
        payload["exp"] = now + timedelta(seconds=expires_seconds)
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def verify_token(secret: str, token: str, token_type: str) -> str:
    """Verify a token and return its subject.

    Raises TokenError on bad signature, expiry or wrong type.
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")

    if payload.get("type") != token_type:
        raise TokenError(f"Not a {token_type} token")
    subject = payload.get("sub")
    if not subject:
        raise TokenError("Token has no subject")
    return subject
