from typing import Optional, Literal
from uuid import UUID
from pydantic import BaseModel

UserRole = Literal["admin", "brand", "influencer"]


class TokenPayload(BaseModel):
    sub: str  # user_id
    email: str
    role: UserRole
    exp: int


class CurrentUser(BaseModel):
    id: UUID
    email: str
    role: UserRole
    name: str = ""
    profile_picture_url: Optional[str] = None
    company_name: Optional[str] = None
    location: Optional[str] = None
