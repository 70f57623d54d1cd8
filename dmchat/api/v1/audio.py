# dmchat/api/v1/audio.py
from fastapi import APIRouter, Depends, status

from dmchat.api.auth import get_current_user
from dmchat.api.dependencies import get_chat_service
from dmchat.models.user import User
from dmchat.schemas import MessageView, VoiceMessageCreate
from dmchat.services.chat_service import ChatService

router = APIRouter()


@router.post("/upload", response_model=MessageView, status_code=status.HTTP_201_CREATED)
async def upload_voice_message(
    voice_data: VoiceMessageCreate,
    current_user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service)
):
    """
    Upload a recorded voice clip and send it as an audio message.
    """
    return await chat_service.send_voice_message(
        sender_id=current_user.id,
        receiver_id=voice_data.receiver_id,
        audio_data=voice_data.audio_data
    )
