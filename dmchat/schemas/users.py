# dmchat/schemas/users.py
from typing import Optional
from pydantic import BaseModel
from datetime import datetime


class UserSummary(BaseModel):
    """Conversation partner as shown in the sidebar"""
    id: str
    email: str
    display_name: str
    profile_pic: Optional[str] = None

    class Config:
        from_attributes = True


class UserResponse(UserSummary):
    """Full profile of the authenticated user"""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: datetime
