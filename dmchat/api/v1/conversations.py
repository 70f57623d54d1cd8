# dmchat/api/v1/conversations.py
from fastapi import APIRouter, Depends
from typing import List

from dmchat.api.auth import get_current_user
from dmchat.api.dependencies import get_service
from dmchat.models.user import User
from dmchat.schemas import UserSummary
from dmchat.services.conversation_service import ConversationService

router = APIRouter()


@router.get("", response_model=List[UserSummary])
async def list_conversation_partners(
    current_user: User = Depends(get_current_user),
    conversation_service: ConversationService = Depends(get_service(ConversationService))
):
    """
    List every user the current user can chat with (self excluded).
    """
    return conversation_service.list_partners(current_user.id)
