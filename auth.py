"""
Auth utilities

Password hashing (passlib bcrypt), JWT issuance/validation (python-jose) and
the ``get_current_user`` dependency that binds a request to a user document.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

import config
from database import get_document, to_object_id
from errors import InvalidCredentials

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def verify_password(plain_password, hashed_password):
    if not plain_password or not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def token_for(user: dict) -> dict:
    return {"access_token": create_access_token({"sub": str(user["_id"])}), "token_type": "bearer"}


def decode_user_id(token: Optional[str]) -> str:
    """Return the user id a token was issued for, or raise InvalidCredentials."""
    if not token:
        raise InvalidCredentials()
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        raise InvalidCredentials()
    subject = payload.get("sub")
    if subject is None:
        raise InvalidCredentials()
    return subject


def get_current_user(token: Optional[str] = Depends(oauth2_scheme)) -> dict:
    user_id = to_object_id(decode_user_id(token))
    user = get_document("user", {"_id": user_id}) if user_id else None
    if not user:
        raise InvalidCredentials()
    return user
