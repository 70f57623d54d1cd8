# dmchat/services/auth_service.py
from typing import Any, Dict
from sqlalchemy.orm import Session
from fastapi import HTTPException, status
import jwt

from dmchat.config import get_settings
from dmchat.models.user import User
from dmchat.services.user_service import UserService


class AuthService:
    """Verifies Supabase-issued access tokens and resolves the local user."""

    def __init__(self, db: Session):
        self.db = db
        self.settings = get_settings()
        self.user_service = UserService(db)

    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Verify a JWT token using the Supabase JWT secret and return its payload.
        """
        try:
            payload = jwt.decode(
                token,
                self.settings.SUPABASE_JWT_SECRET,
                algorithms=["HS256"],
                audience=self.settings.JWT_AUDIENCE
            )
        except jwt.PyJWTError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token"
            )

        if not payload.get("sub"):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token: missing subject"
            )

        return payload

    def get_user_from_token(self, token: str) -> User:
        """
        Resolve the caller of a request. The user record is created on first
        sight, which happens when the account exists in Supabase but not locally.
        """
        payload = self.verify_token(token)
        user_id = payload["sub"]

        user = self.user_service.get_user(user_id)
        if user:
            return user

        user_email = payload.get("email")
        if not user_email:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid user data in token"
            )

        metadata = payload.get("user_metadata") or {}
        return self.user_service.create_user(
            user_id=user_id,
            email=user_email,
            first_name=metadata.get("first_name"),
            last_name=metadata.get("last_name"),
            profile_pic=metadata.get("avatar_url")
        )
