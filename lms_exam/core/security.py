# lms_exam/core/security.py
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from lms_exam.core.config import settings
from lms_exam.db.session import get_db
from lms_exam.models.user import User

# Tokens are issued by the identity service; this service only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")

STUDENT_ROLES = {"student"}
GRADER_ROLES = {"staff", "hod", "admin"}
ADMIN_ROLES = {"hod", "admin"}


def create_access_token(
    data: Dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        raise credentials_exception

    user_id = payload.get("sub")
    if user_id is None:
        raise credentials_exception

    user = db.get(User, str(user_id))
    if user is None or not user.is_active:
        raise credentials_exception
    return user


def _require_roles(user: User, roles: set[str], action: str) -> User:
    if user.role not in roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Only {', '.join(sorted(roles))} can {action}",
        )
    return user


def get_current_student(current_user: User = Depends(get_current_user)) -> User:
    return _require_roles(current_user, STUDENT_ROLES, "take examinations")


def get_current_grader(current_user: User = Depends(get_current_user)) -> User:
    return _require_roles(current_user, GRADER_ROLES, "grade examinations")


def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    return _require_roles(current_user, ADMIN_ROLES, "revoke certificates")
