"""
Bearer tokens for the ledger API.

The ledger does not authenticate anyone itself. An external identity
service signs a JWT (HS256, shared SECRET_KEY) whose "sub" claim is the
caller's account ID. The boundary layer verifies the signature and expiry
and from then on acts for that account only.

create_access_token() signs tokens the same way the issuer does; the demo
seed script and the test suite use it to stand in for the issuer.
"""

import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from app.config import settings


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """
    Sign a token carrying `data` plus an "exp" claim.

    Args:
        data: Claims to sign; the ledger reads "sub" as the account ID.
        expires_delta: Lifetime of the token. Defaults to
                       ACCESS_TOKEN_EXPIRE_MINUTES.
    """
    lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {**data, "exp": datetime.now(timezone.utc) + lifetime}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Verify a token and return its claims.

    Raises:
        JWTError: Bad signature, malformed token or expired.
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


def account_id_from_token(token: str) -> uuid.UUID:
    """
    The account a verified token speaks for.

    Raises:
        JWTError: The token failed verification or has no "sub" claim.
        ValueError: "sub" is not a UUID.
    """
    subject = decode_access_token(token).get("sub")
    if subject is None:
        raise JWTError("Token has no subject")
    return uuid.UUID(subject)
