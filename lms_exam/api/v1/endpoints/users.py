# lms_exam/api/v1/endpoints/users.py
from fastapi import APIRouter, Depends

from lms_exam.core.security import get_current_user
from lms_exam.models.user import User
from lms_exam.schemas.user import UserPublic

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserPublic)
def read_me(current_user: User = Depends(get_current_user)):
    return current_user
