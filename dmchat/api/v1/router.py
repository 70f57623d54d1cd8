# dmchat/api/v1/router.py
from fastapi import APIRouter
from dmchat.api.v1 import users, conversations, messages, audio

# Create the main router
api_router = APIRouter()

# Include all the sub-routers
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(conversations.router, prefix="/conversations", tags=["conversations"])
api_router.include_router(messages.router, prefix="/messages", tags=["messages"])
api_router.include_router(audio.router, prefix="/audio", tags=["audio"])
