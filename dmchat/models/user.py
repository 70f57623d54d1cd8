# dmchat/models/user.py
from sqlalchemy import Boolean, Column, String

from dmchat.database import Base
from dmchat.models.mixins import TimestampMixin


class User(Base, TimestampMixin):
    """
    A messaging participant. The row is created the first time a Supabase
    token for this account is seen, so ``id`` equals the token subject.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, index=True)
    first_name = Column(String(50), nullable=True)
    last_name = Column(String(50), nullable=True)
    email = Column(String(100), unique=True, index=True, nullable=False)
    # Shown next to the user's reactions
    profile_pic = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True)

    def __repr__(self):
        return f"<User {self.id} ({self.email})>"

    @property
    def display_name(self) -> str:
        """Full name, first name, or the local part of the email"""
        names = [name for name in (self.first_name, self.last_name) if name]
        if names:
            return " ".join(names)
        return self.email.split("@")[0]
