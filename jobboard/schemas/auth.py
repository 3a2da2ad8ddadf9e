from typing import Optional
from pydantic import BaseModel, EmailStr

from jobboard.schemas.user import UserOut


class Login(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Optional[UserOut] = None
