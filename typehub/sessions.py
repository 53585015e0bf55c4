"""
Sessions and identity.

User credentials are JWTs carrying the user id (``sub``) and the user's
session version at issuance (``v``). Every login bumps the stored version, so
tokens issued before the latest login stop validating immediately; only one
session is active at a time. Expiry is checked independently by the JWT
library.

Admin credentials are separate JWTs with ``role=admin`` and no ``sub``.
"""
import logging
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Dict, Optional, Tuple

import bcrypt
import requests
from fastapi import Cookie, Depends, Response, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from typehub import config
from typehub.database import get_db
from typehub.errors import Unauthorized
from typehub.models.auth import ExternalIdentity
from typehub.models.schema import User

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


# --- Password hashing (admin) -----------------------------------------------

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(plain_password.encode('utf-8')[:72], hashed_password.encode('utf-8'))


def get_password_hash(password: str) -> str:
    # bcrypt only looks at the first 72 bytes
    password_bytes = password.encode('utf-8')[:72]
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password_bytes, salt)
    return hashed.decode('utf-8')


@lru_cache(maxsize=1)
def _admin_password_hash() -> str:
    return config.ADMIN_PASSWORD_HASH or get_password_hash(config.ADMIN_PASSWORD)


def authenticate_admin(username: str, password: str) -> bool:
    if username != config.ADMIN_USERNAME:
        return False
    return verify_password(password, _admin_password_hash())


# --- Tokens -------------------------------------------------------------------

def _encode(claims: Dict, expires_delta: timedelta) -> str:
    to_encode = claims.copy()
    to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def _decode(token: str) -> Dict:
    try:
        return jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except JWTError:
        raise Unauthorized()


def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    return _encode(
        {"sub": user.id, "v": user.session_version},
        expires_delta or timedelta(days=config.ACCESS_TOKEN_EXPIRE_DAYS),
    )


def create_admin_token(username: str, expires_delta: Optional[timedelta] = None) -> str:
    return _encode(
        {"role": "admin", "username": username},
        expires_delta or timedelta(hours=config.ADMIN_TOKEN_EXPIRE_HOURS),
    )


def validate_token(db: Session, token: str) -> User:
    """Resolve a user token, rejecting tokens from superseded sessions"""
    payload = _decode(token)
    user_id = payload.get("sub")
    if not user_id:
        raise Unauthorized()
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise Unauthorized()
    if payload.get("v", 0) != (user.session_version or 0):
        raise Unauthorized()
    return user


def validate_admin_token(token: str) -> Dict:
    payload = _decode(token)
    if payload.get("role") != "admin":
        raise Unauthorized()
    return payload


def login_with_identity(db: Session, identity: ExternalIdentity) -> Tuple[User, str]:
    """Upsert the user behind an external identity and start a new session"""
    user = db.query(User).filter(User.google_id == identity.external_id).first()
    if user is None:
        user = User(
            google_id=identity.external_id,
            email=identity.email,
            name=identity.name or identity.email,
            avatar_url=identity.avatar_url,
        )
        db.add(user)
    else:
        user.email = identity.email
        user.name = identity.name or identity.email
        user.avatar_url = identity.avatar_url
    db.flush()

    # Single UPDATE so concurrent logins each get a distinct version
    db.query(User).filter(User.id == user.id).update(
        {User.session_version: User.session_version + 1},
        synchronize_session=False,
    )
    db.commit()
    db.refresh(user)

    logger.info(f"User {user.id} logged in, session version {user.session_version}")
    return user, create_access_token(user)


# --- Cookies -----------------------------------------------------------------

def set_session_cookie(response: Response, name: str, token: str, max_age: int):
    response.set_cookie(
        name,
        token,
        max_age=max_age,
        httponly=True,
        secure=config.IS_PRODUCTION,
        samesite="lax",
    )


def _extract_token(cookie_token: Optional[str], credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if cookie_token:
        return cookie_token
    if credentials and credentials.credentials:
        return credentials.credentials
    return None


# --- FastAPI dependencies ------------------------------------------------------

def require_user(
    auth_token: Optional[str] = Cookie(default=None),
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    token = _extract_token(auth_token, credentials)
    if not token:
        raise Unauthorized()
    return validate_token(db, token)


def optional_user(
    auth_token: Optional[str] = Cookie(default=None),
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_db),
) -> Optional[User]:
    token = _extract_token(auth_token, credentials)
    if not token:
        return None
    try:
        return validate_token(db, token)
    except Unauthorized:
        # invalid, expired or superseded token: proceed as anonymous
        return None


def require_admin(
    admin_token: Optional[str] = Cookie(default=None),
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
) -> Dict:
    token = _extract_token(admin_token, credentials)
    if not token:
        raise Unauthorized()
    return validate_admin_token(token)


# --- Identity provider -------------------------------------------------------

class GoogleIdentityProvider:
    """Resolves a Google ID token (from Google Identity Services) to an identity"""

    def __init__(self, client_id: Optional[str] = None, tokeninfo_url: Optional[str] = None, timeout: float = 10):
        self.client_id = client_id if client_id is not None else config.GOOGLE_CLIENT_ID
        self.tokeninfo_url = tokeninfo_url or config.GOOGLE_TOKENINFO_URL
        self.timeout = timeout

    def resolve(self, credential: str) -> ExternalIdentity:
        response = requests.get(self.tokeninfo_url, params={"id_token": credential}, timeout=self.timeout)
        if response.status_code != 200:
            logger.warning(f"Google rejected ID token: {response.status_code}")
            raise Unauthorized("Invalid Google credential")

        data = response.json()
        if self.client_id and data.get("aud") != self.client_id:
            raise Unauthorized("Invalid Google credential")
        if not data.get("sub") or not data.get("email"):
            raise Unauthorized("Invalid Google credential")

        return ExternalIdentity(
            external_id=data["sub"],
            email=data["email"],
            name=data.get("name") or data["email"],
            avatar_url=data.get("picture"),
        )


def get_identity_provider() -> GoogleIdentityProvider:
    return GoogleIdentityProvider()
