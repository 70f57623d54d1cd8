# dmchat/api/auth.py
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from dmchat.database import get_db
from dmchat.services.auth_service import AuthService
from dmchat.models.user import User

# Setup security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Dependency to get the current authenticated user from a JWT token.
    Uses Supabase authentication; the caller identity never comes from the body.
    """
    return AuthService(db).get_user_from_token(credentials.credentials)
