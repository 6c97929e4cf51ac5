# barbershop/auth.py

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlmodel import Session, select

from .config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from .db import get_session
from .models import User

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except ValueError:
        # not a bcrypt hash (e.g. an account seeded without a password)
        return False


def create_access_token(data: dict, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    claims = dict(data)
    claims["exp"] = datetime.utcnow() + timedelta(minutes=expires_minutes)
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def token_for(user: User) -> str:
    # role is informational; get_current_user always reloads it from the db
    return create_access_token({"sub": user.email, "uid": user.id, "role": user.role})


def authenticate_user(session: Session, email: str, password: str) -> Optional[User]:
    """The user with these credentials, or None. Inactive users are returned too."""
    user = session.exec(select(User).where(User.email == email)).first()
    if user is None or not verify_password(password, user.password_hash):
        logger.info(f"Failed login for {email}")
        return None
    return user


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def get_current_user(
    token: str = Depends(oauth2_scheme),
    session: Session = Depends(get_session),
) -> dict:
    """Resolve the bearer token to an actor dict: id, email, name and role."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise _unauthorized("Invalid token")
    email = payload.get("sub")
    if email is None:
        raise _unauthorized("Invalid token")

    user = session.exec(select(User).where(User.email == email)).first()
    if user is None or not user.is_active:
        raise _unauthorized("User not found or disabled")

    return {"id": user.id, "email": user.email, "name": user.name, "role": user.role}
