import logging
from datetime import timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from circulation.config import settings
from circulation.models.user import User, ROLE_ADMIN, STAFF_ROLES
from circulation.database import get_db
from circulation.utils.timezone import now_local

logger = logging.getLogger(__name__)

# auto_error=False so a missing header is logged before the 401
security = HTTPBearer(auto_error=False)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

CREDENTIALS_ERROR = "Could not validate credentials. Please provide a valid Authorization header with Bearer token."


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except (ValueError, TypeError) as e:
        logger.error(f"Password verification error: {e}. Hash format may be invalid.")
        return False

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    """Look up a user by email and check the password; None on any mismatch."""
    user = db.query(User).filter(User.user_email == email).first()
    if not user or not verify_password(password, user.user_password_hash):
        logger.warning(f"Failed login for {email}")
        return None
    return user

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a JWT with ``exp`` set relative to library time."""
    to_encode = data.copy()
    expire = now_local() + (expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

def token_user_id(token: str) -> Optional[int]:
    """User id carried in the ``sub`` claim, or None when the token is unusable."""
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        return int(payload["sub"])
    except JWTError as e:
        logger.warning(f"JWT validation error: {e}")
    except (KeyError, ValueError, TypeError) as e:
        logger.warning(f"Token parsing error: {e}")
    return None

def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=CREDENTIALS_ERROR,
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None or not credentials.credentials:
        if request.headers.get("Authorization"):
            logger.warning(f"Authorization header present but invalid format on {request.url.path}")
        else:
            logger.warning(f"Authorization header missing on {request.url.path}")
        raise credentials_exception

    user_id = token_user_id(credentials.credentials)
    user = db.query(User).filter(User.user_id == user_id).first() if user_id is not None else None
    if user is None:
        raise credentials_exception
    return user

def require_roles(*roles: str, action: str = "perform this action"):
    """Dependency factory: the current user must hold one of ``roles``."""
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.user_role not in roles:
            logger.warning(f"User {current_user.user_id} ({current_user.user_role}) denied: {action}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Only {' and '.join(r + 's' for r in roles)} can {action}"
            )
        return current_user
    return dependency

get_current_staff = require_roles(*STAFF_ROLES)
get_current_admin = require_roles(ROLE_ADMIN)
