# lms_exam/schemas/user.py
from datetime import datetime

from pydantic import BaseModel, EmailStr


class UserPublic(BaseModel):
    id: str
    email: EmailStr
    name: str
    role: str  # "student" / "staff" / "hod" / "admin"
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
