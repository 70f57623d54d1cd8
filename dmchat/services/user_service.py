# dmchat/services/user_service.py
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from typing import Dict, Iterable, List, Optional
import logging

from dmchat.exceptions import StoreError
from dmchat.models.user import User

logger = logging.getLogger(__name__)


class UserService:
    """Service for handling user operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: str) -> Optional[User]:
        """Get a user by ID"""
        try:
            return self.db.query(User).filter(User.id == user_id).first()
        except SQLAlchemyError as e:
            logger.error(f"Failed to load user {user_id}: {str(e)}")
            raise StoreError("Failed to load user") from e

    def get_users_by_ids(self, user_ids: Iterable[str]) -> Dict[str, User]:
        """Batch lookup keyed by user id; unknown ids are simply absent"""
        ids = set(user_ids)
        if not ids:
            return {}
        try:
            users = self.db.query(User).filter(User.id.in_(ids)).all()
        except SQLAlchemyError as e:
            logger.error(f"User lookup failed: {str(e)}")
            raise StoreError("Failed to load users") from e
        return {user.id: user for user in users}

    def list_users_except(self, user_id: str) -> List[User]:
        """Every other user, for the conversation sidebar"""
        try:
            return (
                self.db.query(User)
                .filter(User.id != user_id)
                .order_by(User.first_name, User.email)
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to list users: {str(e)}")
            raise StoreError("Failed to load users") from e

    def create_user(
        self,
        user_id: str,
        email: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        profile_pic: Optional[str] = None
    ) -> User:
        """
        Create a user in our database (should be called after Supabase Auth registration)
        """
        # Check if user already exists
        existing_user = self.get_user(user_id)
        if existing_user:
            return existing_user

        user = User(
            id=user_id,
            email=email,
            first_name=first_name,
            last_name=last_name,
            profile_pic=profile_pic
        )

        try:
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create user {user_id}: {str(e)}")
            raise StoreError("Failed to create user") from e

        return user
