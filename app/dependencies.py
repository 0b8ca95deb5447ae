"""
FastAPI dependencies for authentication and service wiring.

Dependencies are reusable functions that FastAPI injects into route
handlers:

  get_current_account_id (JWT -> account UUID)
  get_ledger_service     (shared LedgerService)
  get_query_service      (shared QueryService, same locks as the ledger)

The ledger and query services are process-wide singletons: they share one
AccountLocks registry, which is what serialises concurrent requests
against the same account. Tests override get_ledger_service and
get_query_service to point at their own database.
"""

import uuid
from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from app.config import settings
from app.database import AsyncSessionLocal
from app.locks import AccountLocks
from app.security import account_id_from_token
from app.services.ledger_service import LedgerService
from app.services.query_service import QueryService


# OAuth2PasswordBearer tells FastAPI where to look for the token:
# the "Authorization: Bearer <token>" header. Tokens are issued by an
# external identity service; tokenUrl only feeds Swagger UI.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


async def get_current_account_id(token: str = Depends(oauth2_scheme)) -> uuid.UUID:
    """
    Extract and validate the JWT token, then return the caller's account ID.

    The ledger trusts this ID — it does not look the account up here.
    A token for an account that doesn't exist surfaces as a 404 from the
    ledger operation itself.

    Raises:
        HTTPException 401: If the token is missing, invalid or expired.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        return account_id_from_token(token)
    except (JWTError, ValueError):
        raise credentials_exception


@lru_cache
def get_account_locks() -> AccountLocks:
    return AccountLocks(timeout_seconds=settings.LOCK_TIMEOUT_SECONDS)


@lru_cache
def get_ledger_service() -> LedgerService:
    return LedgerService.from_settings(AsyncSessionLocal, get_account_locks())


@lru_cache
def get_query_service() -> QueryService:
    return QueryService.from_settings(AsyncSessionLocal, get_account_locks())
