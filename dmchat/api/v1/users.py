# dmchat/api/v1/users.py
from fastapi import APIRouter, Depends

from dmchat.api.auth import get_current_user
from dmchat.models.user import User
from dmchat.schemas import UserResponse

router = APIRouter()


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """
    Get information about the current authenticated user
    
    Returns the user profile
    """
    return current_user
