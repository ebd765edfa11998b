"""
JWT issue/verification and password hashing.
Expect Authorization: Bearer <token>. Tokens are HS256, carry userId and expire after
JWT_EXPIRES_DAYS (default 7). Set JWT_SECRET in production.
"""
from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

JWT_SECRET = os.environ.get("JWT_SECRET", "your-secret-key")
JWT_ALGORITHM = "HS256"
JWT_EXPIRES_DAYS = int(os.environ.get("JWT_EXPIRES_DAYS", "7"))

security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def generate_token(user_id: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {"userId": user_id, "iat": now, "exp": now + timedelta(days=JWT_EXPIRES_DAYS)}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> int:
    """Return the userId claim. Raises jwt.InvalidTokenError on a bad or expired token."""
    payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    user_id = payload.get("userId")
    if not isinstance(user_id, int):
        raise jwt.InvalidTokenError("userId claim missing")
    return user_id


def require_user(
    creds: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> int:
    """Verified owner id for the request. The report pipeline trusts this without re-checking."""
    if not creds or not creds.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token is required")
    try:
        return verify_token(creds.credentials)
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired token")
