import base64
import os
from datetime import UTC, datetime, timedelta
from typing import Generator
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

# Test configuration, applied before the application reads its settings
TEST_JWT_SECRET = "test-jwt-secret-with-enough-length-for-hs256"
TEST_ENCRYPTION_KEY = base64.urlsafe_b64encode(b"k" * 32).decode("ascii")

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = TEST_JWT_SECRET
os.environ["MESSAGE_ENCRYPTION_KEY"] = TEST_ENCRYPTION_KEY
os.environ["LOG_LEVEL"] = "WARNING"

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from dmchat.core.crypto import MessageCipher
from dmchat.database import Base, SessionLocal, engine, init_db
from dmchat.models.user import User
from dmchat.services.conversation_service import ConversationProjector
from dmchat.services.message_service import MessageLocks, MessageService
from dmchat.services.storage_service import StorageService
from dmchat.services.user_service import UserService
from dmchat.websockets.connection_manager import ConnectionManager
from dmchat.websockets.event_dispatcher import RealtimeDispatcher


def make_token(user_id: str, email: str, expires_in: int = 3600) -> str:
    payload = {
        "sub": user_id,
        "email": email,
        "aud": "authenticated",
        "exp": datetime.now(UTC) + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


def make_websocket() -> AsyncMock:
    websocket = AsyncMock()
    websocket.send_text = AsyncMock()
    websocket.close = AsyncMock()
    return websocket


# Database fixtures
@pytest.fixture
def reset_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session(reset_database) -> Generator[Session, None, None]:
    session = SessionLocal()
    yield session
    session.close()


# Codec and service fixtures
@pytest.fixture
def cipher() -> MessageCipher:
    return MessageCipher(base64.urlsafe_b64decode(TEST_ENCRYPTION_KEY))


@pytest.fixture
def user_service(db_session: Session) -> UserService:
    return UserService(db_session)


@pytest.fixture
def message_service(db_session: Session, cipher: MessageCipher) -> MessageService:
    return MessageService(db_session, cipher=cipher, locks=MessageLocks())


@pytest.fixture
def projector(user_service: UserService, cipher: MessageCipher) -> ConversationProjector:
    return ConversationProjector(user_service, cipher=cipher)


@pytest.fixture
def connection_manager() -> ConnectionManager:
    return ConnectionManager()


@pytest.fixture
def dispatcher(connection_manager: ConnectionManager) -> RealtimeDispatcher:
    return RealtimeDispatcher(connection_manager)


@pytest.fixture
def mock_storage(mocker) -> MagicMock:
    return mocker.create_autospec(StorageService, instance=True)


# Test data fixtures
@pytest.fixture
def alice(user_service: UserService) -> User:
    return user_service.create_user(
        user_id=str(uuid4()),
        email="alice@example.com",
        first_name="Alice",
        last_name="Doe",
        profile_pic="https://cdn.example.com/alice.png",
    )


@pytest.fixture
def bob(user_service: UserService) -> User:
    return user_service.create_user(
        user_id=str(uuid4()),
        email="bob@example.com",
        first_name="Bob",
    )


@pytest.fixture
def carol(user_service: UserService) -> User:
    return user_service.create_user(user_id=str(uuid4()), email="carol@example.com")


# API fixtures
@pytest.fixture
def client(reset_database) -> Generator[TestClient, None, None]:
    from dmchat.main import app

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def alice_auth() -> dict:
    user_id = str(uuid4())
    return {
        "id": user_id,
        "token": make_token(user_id, "alice@example.com"),
        "headers": {"Authorization": f"Bearer {make_token(user_id, 'alice@example.com')}"},
    }


@pytest.fixture
def bob_auth() -> dict:
    user_id = str(uuid4())
    return {
        "id": user_id,
        "token": make_token(user_id, "bob@example.com"),
        "headers": {"Authorization": f"Bearer {make_token(user_id, 'bob@example.com')}"},
    }
