import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

from config import ACCESS_TOKEN_EXPIRE_MINUTES, ALGORITHM, BCRYPT_ROUNDS, SECRET_KEY
from errors import Forbidden, TokenExpired, Unauthenticated

logger = logging.getLogger("AUTH")

ADMIN_ROLES = ("admin", "superadmin")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)
bearer_scheme = HTTPBearer(auto_error=False)


class Identity(BaseModel):
    """The authenticated caller, as carried inside the token."""
    id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


# --- Password Hashing Functions ---
def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password):
    return pwd_context.hash(password)


# --- JWT Token Creation ---
def create_access_token(identity: Identity, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"user": {"id": identity.id, "role": identity.role}, "exp": expire}
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Identity:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise TokenExpired()
    except JWTError as e:
        logger.warning("Rejected token: %s", e)
        raise Unauthenticated()

    user = payload.get("user") or {}
    if not isinstance(user, dict) or not user.get("id") or not user.get("role"):
        raise Unauthenticated()
    return Identity(id=str(user["id"]), role=str(user["role"]))


# --- Request Authentication ---
def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Identity:
    if credentials is None or not credentials.credentials:
        raise Unauthenticated("Not authorized, no token")
    return decode_access_token(credentials.credentials)


def require_roles(*roles: str):
    """Dependency factory. No roles means any authenticated caller passes."""
    allowed = set(roles)
    if allowed & set(ADMIN_ROLES):
        # superadmin is the higher admin rank and passes every admin gate
        allowed.add("superadmin")

    def checker(current_user: Identity = Depends(get_current_user)) -> Identity:
        if allowed and current_user.role not in allowed:
            raise Forbidden()
        return current_user

    return checker
