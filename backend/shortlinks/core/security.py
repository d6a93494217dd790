from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt.exceptions import InvalidTokenError
from passlib.context import CryptContext

from ..config import Settings

# bcrypt ignores or rejects input past this many bytes
MAX_PASSWORD_BYTES = 72


def build_password_context(rounds: int = 12) -> CryptContext:
    """Password hashing context for link passwords"""
    return CryptContext(
        schemes=["bcrypt"],
        deprecated="auto",
        bcrypt__rounds=rounds
    )


class PasswordHasher:
    """Hash and verify link passwords"""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds
        self.context = build_password_context(rounds)

    def hash(self, password: str) -> str:
        """Hash a password"""
        try:
            return self.context.hash(password)
        except ValueError:
            # passlib's bcrypt backend self-test fails on bcrypt >= 4.1
            hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=self.rounds))
            return hashed.decode('utf-8')

    def verify(self, plain_password: str, hashed_password: str) -> bool:
        """Verify a password against a hash"""
        try:
            return self.context.verify(plain_password, hashed_password)
        except ValueError:
            try:
                return bcrypt.checkpw(
                    plain_password.encode('utf-8'),
                    hashed_password.encode('utf-8')
                )
            except ValueError:
                return False


def create_access_token(owner_id: str, settings: Settings,
                        expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT identifying a link owner.

    Args:
        owner_id: Owner identifier, stored in the "sub" claim
        settings: Settings carrying the signing key and algorithm
        expires_delta: Token expiration time

    Returns:
        Encoded JWT token
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "sub": owner_id,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }

    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_owner_id(token: str, settings: Settings) -> Optional[str]:
    """Owner id from a token, None when the token is invalid or has no subject"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except InvalidTokenError:
        return None

    return payload.get("sub")


bearer_scheme = HTTPBearer(auto_error=False)


def _credentials_exception() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_optional_owner(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Optional[str]:
    """
    Owner of the request, or None for anonymous callers.

    A token that is present but invalid is still rejected.
    """
    if credentials is None:
        return None

    owner_id = decode_owner_id(credentials.credentials, request.app.state.settings)
    if owner_id is None:
        raise _credentials_exception()

    return owner_id


async def get_current_owner(
    owner_id: Optional[str] = Depends(get_optional_owner)
) -> str:
    """Owner of the request; authentication is required"""
    if owner_id is None:
        raise _credentials_exception()

    return owner_id
