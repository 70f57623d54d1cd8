# dmchat/api/dependencies.py
from typing import Callable, Type
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from dmchat.database import get_db
from dmchat.services.chat_service import ChatService
from dmchat.websockets.connection_manager import ConnectionManager
from dmchat.websockets.event_dispatcher import RealtimeDispatcher


def get_service(service_class: Type) -> Callable:
    """Factory function to create service dependencies with DB injection"""
    def _get_service(db: Session = Depends(get_db)):
        return service_class(db)
    return _get_service


def get_connection_manager(request: Request) -> ConnectionManager:
    """The connection registry created in the application lifespan"""
    return request.app.state.connection_manager


def get_dispatcher(
    connection_manager: ConnectionManager = Depends(get_connection_manager)
) -> RealtimeDispatcher:
    return RealtimeDispatcher(connection_manager)


def get_chat_service(
    db: Session = Depends(get_db),
    dispatcher: RealtimeDispatcher = Depends(get_dispatcher)
) -> ChatService:
    return ChatService(db, dispatcher)
