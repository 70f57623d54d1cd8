# dmchat/api/v1/messages.py
from fastapi import APIRouter, Depends, Query, status
from typing import List

from dmchat.api.auth import get_current_user
from dmchat.api.dependencies import get_chat_service
from dmchat.models.user import User
from dmchat.schemas import MessageCreate, MessageUpdate, MessageView, ReactionRequest
from dmchat.services.chat_service import ChatService

router = APIRouter()


@router.get("/{other_user_id}/search", response_model=List[MessageView])
async def search_messages(
    other_user_id: str,
    query: str = Query(""),
    current_user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service)
):
    """
    Search the conversation with another user, case-insensitively.
    
    Returns matching messages oldest first.
    """
    return chat_service.search_messages(current_user.id, other_user_id, query)


@router.get("/{other_user_id}", response_model=List[MessageView])
async def get_conversation(
    other_user_id: str,
    current_user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service)
):
    """
    Get every message between the current user and another user, oldest first.
    
    Messages hidden for the current user are returned redacted.
    """
    return chat_service.get_conversation(current_user.id, other_user_id)


@router.post(
    "/{other_user_id}",
    response_model=MessageView,
    status_code=status.HTTP_201_CREATED
)
async def send_message(
    other_user_id: str,
    message_data: MessageCreate,
    current_user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service)
):
    """
    Send a text and/or media message to another user.
    """
    return await chat_service.send_message(
        sender_id=current_user.id,
        receiver_id=other_user_id,
        text=message_data.text,
        attachment=message_data.attachment,
        file=message_data.file,
        file_name=message_data.file_name
    )


@router.put("/{message_id}", response_model=MessageView)
async def edit_message(
    message_id: str,
    message_data: MessageUpdate,
    current_user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service)
):
    """Edit the text of a message the current user sent."""
    return await chat_service.edit_message(current_user.id, message_id, message_data.text)


@router.delete("/{message_id}", response_model=MessageView)
async def delete_message(
    message_id: str,
    current_user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service)
):
    """
    Delete a message for the current user. Once both participants have
    deleted it, it is deleted for everyone.
    """
    return await chat_service.delete_message(current_user.id, message_id)


@router.post("/{message_id}/react", response_model=MessageView)
async def react_to_message(
    message_id: str,
    reaction: ReactionRequest,
    current_user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service)
):
    """Add, change or remove (same emoji again) the current user's reaction."""
    return await chat_service.react_to_message(current_user.id, message_id, reaction.emoji)
