import time
from typing import Optional, Tuple

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import crud, models, schemas
from .config import Settings, get_settings
from .db import get_db
from .errors import ConflictError, ForbiddenError, UnauthorizedError
from .utils import get_logger

logger = get_logger(__name__)

# Use pbkdf2_sha256 as default to avoid bcrypt 72-byte limitation in some envs
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")
# Checked against when the email is unknown so every login attempt costs one hash
_DUMMY_HASH = pwd_context.hash("not-a-real-password")

ALGORITHM = "HS256"
INVALID_CREDENTIALS = "Invalid credentials"

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: int, email: str, role: str, secret: str, expires_delta: Optional[int] = None) -> str:
    now = int(time.time())
    exp = now + (expires_delta or get_settings().jwt_expires_seconds)
    payload = {"sub": str(user_id), "email": email, "role": role, "iat": now, "exp": exp}
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def decode_access_token(token: str, secret: str) -> dict:
    return jwt.decode(token, secret, algorithms=[ALGORITHM])


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def issue_token(user: models.User, settings: Settings) -> str:
    return create_access_token(user.id, user.email, user.role, settings.jwt_secret, settings.jwt_expires_seconds)


def register_user(
    db: Session,
    payload: schemas.RegisterRequest,
    settings: Settings,
    role: models.UserRole = models.UserRole.USER,
) -> Tuple[models.User, str]:
    if crud.get_user_by_email(db, payload.email):
        logger.warning("Registration attempt with existing email: %s", payload.email)
        raise ConflictError("User with this email already exists")
    try:
        user = crud.create_user(
            db,
            email=payload.email,
            password_hash=hash_password(payload.password),
            first_name=payload.first_name,
            last_name=payload.last_name,
            role=role,
        )
    except IntegrityError as e:
        # Lost a race with a concurrent registration for the same email
        raise ConflictError("User with this email already exists") from e
    logger.info("New user registered: %s (ID: %s, role: %s)", user.email, user.id, user.role)
    return user, issue_token(user, settings)


def authenticate_user(db: Session, payload: schemas.LoginRequest, settings: Settings) -> Tuple[models.User, str]:
    # Unknown email, inactive account and wrong password all get the same answer
    user = crud.get_user_by_email(db, payload.email)
    if not user:
        verify_password(payload.password, _DUMMY_HASH)
        logger.warning("Login attempt with unknown email: %s", payload.email)
        raise UnauthorizedError(INVALID_CREDENTIALS)
    if not verify_password(payload.password, user.password_hash):
        logger.warning("Failed login attempt for: %s", payload.email)
        raise UnauthorizedError(INVALID_CREDENTIALS)
    if not user.is_active:
        logger.warning("Login attempt with inactive account: %s", payload.email)
        raise UnauthorizedError(INVALID_CREDENTIALS)
    logger.info("User logged in: %s (ID: %s)", user.email, user.id)
    return user, issue_token(user, settings)


def validate_token_subject(db: Session, claims: dict) -> models.User:
    try:
        user_id = int(claims.get("sub"))
    except (TypeError, ValueError):
        raise UnauthorizedError("invalid token")
    user = crud.get_user(db, user_id)
    if not user or not user.is_active:
        raise UnauthorizedError("User not found or inactive")
    return user


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> models.User:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("Authentication required. Please provide a valid JWT token.")
    try:
        claims = decode_access_token(credentials.credentials, settings.jwt_secret)
    except jwt.PyJWTError:
        raise UnauthorizedError("invalid token")
    return validate_token_subject(db, claims)


def require_role(*roles: models.UserRole):
    """Build a dependency that lets through only users holding one of ``roles``."""
    allowed = {role.value for role in roles}

    def guard(user: models.User = Depends(get_current_user)) -> models.User:
        if user.role not in allowed:
            logger.warning("User %s with role %s denied; requires %s", user.id, user.role, sorted(allowed))
            raise ForbiddenError("forbidden: insufficient role")
        return user

    return guard


require_admin = require_role(models.UserRole.ADMIN)
