import secrets
import string
from datetime import datetime, timedelta, timezone

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.core.config import settings

# auto_error is off so a missing header is a 401, not FastAPI's default 403
security = HTTPBearer(auto_error=False)

TEMP_PASSWORD_ALPHABET = string.ascii_letters + string.digits


class TokenPayload:
    def __init__(self, sub: str, exp: datetime, email: str | None = None):
        self.sub = sub
        self.exp = exp
        self.email = email


def create_access_token(
    subject: str,
    email: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {"exp": expire, "sub": str(subject)}
    if email:
        to_encode["email"] = email
    encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    return encoded_jwt


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


def verify_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> TokenPayload:
    if credentials is None:
        raise _credentials_exception()

    token = credentials.credentials
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise _credentials_exception()

    if not payload.get("sub"):
        raise _credentials_exception()

    return TokenPayload(
        sub=payload.get("sub"),
        exp=payload.get("exp"),
        email=payload.get("email"),
    )


# ============================================================================
# Passwords
# ============================================================================


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.PASSWORD_HASH_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        return False


def generate_temporary_password(length: int | None = None) -> str:
    """Random alphanumeric password for newly created accounts."""
    length = length or settings.TEMP_PASSWORD_LENGTH
    return "".join(secrets.choice(TEMP_PASSWORD_ALPHABET) for _ in range(length))
