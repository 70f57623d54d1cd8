import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from dmchat.core.crypto import MessageCipher
from dmchat.database import Base
from dmchat.exceptions import NotFound, StoreError, ValidationError
from dmchat.models.enums import AttachmentKind
from dmchat.models.message import Attachment, Message
from dmchat.models.user import User
from dmchat.services.message_service import MessageLocks, MessageService


@pytest.mark.unit
class TestMessageService:
    def test_create_text_message_stores_ciphertext(
        self, message_service: MessageService, cipher: MessageCipher, alice: User, bob: User
    ):
        # Act
        message = message_service.create_message(alice.id, bob.id, "hi")

        # Assert
        assert message.id
        assert message.created_at is not None
        assert message.text != "hi"
        assert cipher.decrypt(message.text) == "hi"
        assert message.edited is False
        assert message.is_deleted is False
        assert message.deleted_for == set()

    def test_create_media_message_without_text(
        self, message_service: MessageService, alice: User, bob: User
    ):
        # Arrange
        attachment = Attachment(kind=AttachmentKind.IMAGE, url="https://cdn/x.png", name="x.png")

        # Act
        message = message_service.create_message(alice.id, bob.id, None, attachment)

        # Assert
        assert not message.text
        assert message.attachment == attachment

    def test_create_requires_text_or_attachment(
        self, message_service: MessageService, alice: User, bob: User
    ):
        with pytest.raises(ValidationError, match="text or an attachment"):
            message_service.create_message(alice.id, bob.id, "", None)

    def test_get_message_not_found(self, message_service: MessageService):
        with pytest.raises(NotFound):
            message_service.get_message("missing")

    def test_list_conversation_both_directions_in_creation_order(
        self, message_service: MessageService, alice: User, bob: User, carol: User
    ):
        # Arrange
        first = message_service.create_message(alice.id, bob.id, "one")
        second = message_service.create_message(bob.id, alice.id, "two")
        message_service.create_message(alice.id, carol.id, "elsewhere")
        third = message_service.create_message(alice.id, bob.id, "three")

        # Act
        from_alice = message_service.list_conversation(alice.id, bob.id)
        from_bob = message_service.list_conversation(bob.id, alice.id)

        # Assert
        assert [m.id for m in from_alice] == [first.id, second.id, third.id]
        assert [m.id for m in from_bob] == [first.id, second.id, third.id]

    def test_list_conversation_orders_by_created_at_not_insertion(
        self, message_service: MessageService, db_session, alice: User, bob: User
    ):
        # Arrange
        later = message_service.create_message(alice.id, bob.id, "later")
        earlier = message_service.create_message(bob.id, alice.id, "earlier")
        earlier.created_at = later.created_at - timedelta(minutes=5)
        db_session.commit()

        # Act
        messages = message_service.list_conversation(alice.id, bob.id)

        # Assert
        assert [m.id for m in messages] == [earlier.id, later.id]

    def test_mark_deleted_for_one_participant(
        self, message_service: MessageService, alice: User, bob: User
    ):
        # Arrange
        message = message_service.create_message(alice.id, bob.id, "hi")

        # Act
        updated = message_service.mark_deleted_for(message.id, alice.id)

        # Assert
        assert updated.deleted_for == {alice.id}
        assert updated.is_deleted is False

    def test_mark_deleted_for_is_idempotent(
        self, message_service: MessageService, alice: User, bob: User
    ):
        message = message_service.create_message(alice.id, bob.id, "hi")

        message_service.mark_deleted_for(message.id, alice.id)
        updated = message_service.mark_deleted_for(message.id, alice.id)

        assert updated.deleted_for == {alice.id}
        assert len(updated.deletions) == 1

    def test_deleted_for_both_sets_is_deleted(
        self, message_service: MessageService, alice: User, bob: User
    ):
        message = message_service.create_message(alice.id, bob.id, "hi")

        message_service.mark_deleted_for(message.id, alice.id)
        updated = message_service.mark_deleted_for(message.id, bob.id)

        assert updated.deleted_for == {alice.id, bob.id}
        assert updated.is_deleted is True

    def test_is_deleted_survives_further_mutations(
        self, message_service: MessageService, alice: User, bob: User
    ):
        # Arrange
        message = message_service.create_message(alice.id, bob.id, "hi")
        message_service.mark_deleted_for(message.id, alice.id)
        message_service.mark_deleted_for(message.id, bob.id)

        # Act
        message_service.set_text(message.id, "edited after delete")
        message_service.apply_reaction(message.id, bob.id, "👍")
        message_service.set_reactions(message.id, {})
        message_service.mark_deleted_for(message.id, alice.id)

        # Assert
        assert message_service.get_message(message.id).is_deleted is True

    def test_mark_deleted_for_rejects_outsider(
        self, message_service: MessageService, alice: User, bob: User, carol: User
    ):
        message = message_service.create_message(alice.id, bob.id, "hi")

        with pytest.raises(ValidationError):
            message_service.mark_deleted_for(message.id, carol.id)
        assert message_service.get_message(message.id).deleted_for == set()

    def test_mark_deleted_for_missing_message(self, message_service: MessageService, alice: User):
        with pytest.raises(NotFound):
            message_service.mark_deleted_for("missing", alice.id)

    def test_set_text_marks_edited(
        self, message_service: MessageService, cipher: MessageCipher, alice: User, bob: User
    ):
        message = message_service.create_message(alice.id, bob.id, "hi")

        updated = message_service.set_text(message.id, "hello")

        assert cipher.decrypt(updated.text) == "hello"
        assert updated.edited is True
        assert updated.edited_at is not None

    def test_set_text_keeps_deletion_state(
        self, message_service: MessageService, alice: User, bob: User
    ):
        message = message_service.create_message(alice.id, bob.id, "hi")
        message_service.mark_deleted_for(message.id, bob.id)

        updated = message_service.set_text(message.id, "hello")

        assert updated.deleted_for == {bob.id}
        assert updated.is_deleted is False

    def test_set_text_missing_message(self, message_service: MessageService):
        with pytest.raises(NotFound):
            message_service.set_text("missing", "hello")

    def test_apply_reaction_keeps_both_users(
        self, message_service: MessageService, alice: User, bob: User
    ):
        message = message_service.create_message(alice.id, bob.id, "hi")

        message_service.apply_reaction(message.id, alice.id, "👍")
        updated = message_service.apply_reaction(message.id, bob.id, "😂")

        assert updated.reaction_map == {alice.id: "👍", bob.id: "😂"}

    def test_apply_reaction_toggle_and_replace(
        self, message_service: MessageService, alice: User, bob: User
    ):
        message = message_service.create_message(alice.id, bob.id, "hi")

        message_service.apply_reaction(message.id, bob.id, "👍")
        replaced = message_service.apply_reaction(message.id, bob.id, "❤️")
        assert replaced.reaction_map == {bob.id: "❤️"}
        assert len(replaced.reactions) == 1

        removed = message_service.apply_reaction(message.id, bob.id, "❤️")
        assert removed.reaction_map == {}

    def test_set_reactions_replaces_whole_set(
        self, message_service: MessageService, alice: User, bob: User
    ):
        message = message_service.create_message(alice.id, bob.id, "hi")
        message_service.apply_reaction(message.id, alice.id, "👍")

        updated = message_service.set_reactions(message.id, {bob.id: "🔥"})

        assert updated.reaction_map == {bob.id: "🔥"}

    def test_set_reactions_missing_message(self, message_service: MessageService, alice: User):
        with pytest.raises(NotFound):
            message_service.set_reactions("missing", {alice.id: "👍"})

    def test_mutation_releases_lock(
        self, db_session, cipher: MessageCipher, alice: User, bob: User
    ):
        # Arrange
        locks = MessageLocks()
        service = MessageService(db_session, cipher=cipher, locks=locks)
        message = service.create_message(alice.id, bob.id, "hi")

        # Act
        service.apply_reaction(message.id, alice.id, "👍")
        with pytest.raises(NotFound):
            service.apply_reaction("missing", alice.id, "👍")

        # Assert
        assert len(locks) == 0

    def test_store_failure_is_wrapped_and_rolled_back(
        self, message_service: MessageService, alice: User, bob: User
    ):
        # Arrange
        message = message_service.create_message(alice.id, bob.id, "hi")

        # Act & Assert
        with patch.object(
            message_service.db, "commit", side_effect=OperationalError("UPDATE", {}, Exception("disk"))
        ):
            with pytest.raises(StoreError):
                message_service.set_text(message.id, "hello")

        assert message_service.get_message(message.id).edited is False


@pytest.mark.unit
class TestConcurrentReactions:
    @pytest.fixture
    def file_session_factory(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'reactions.db'}",
            connect_args={"check_same_thread": False, "timeout": 30}
        )
        Base.metadata.create_all(bind=engine)
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
        engine.dispose()

    def test_reactions_from_many_users_are_all_kept(self, file_session_factory, cipher: MessageCipher):
        # Arrange
        workers = 12
        locks = MessageLocks()
        setup = file_session_factory()
        message_id = MessageService(setup, cipher=cipher, locks=locks).create_message("sender", "receiver", "hi").id
        setup.close()
        user_ids = [f"user-{n}" for n in range(workers)]
        barrier = threading.Barrier(workers)

        def react(user_id: str):
            session = file_session_factory()
            try:
                barrier.wait()
                MessageService(session, cipher=cipher, locks=locks).apply_reaction(message_id, user_id, "👍")
            finally:
                session.close()

        # Act
        with ThreadPoolExecutor(max_workers=workers) as pool:
            for future in [pool.submit(react, user_id) for user_id in user_ids]:
                future.result()

        # Assert
        check = file_session_factory()
        try:
            stored = MessageService(check, cipher=cipher, locks=locks).get_message(message_id)
            assert stored.reaction_map == {user_id: "👍" for user_id in user_ids}
        finally:
            check.close()
        assert len(locks) == 0


@pytest.mark.unit
class TestMessageLocks:
    def test_same_message_is_serialized(self):
        locks = MessageLocks()
        with locks.hold("m1"):
            assert len(locks) == 1
            inner = locks._locks["m1"][0]
            assert inner.locked()
        assert len(locks) == 0

    def test_different_messages_use_different_locks(self):
        locks = MessageLocks()
        with locks.hold("m1"):
            with locks.hold("m2"):
                assert len(locks) == 2
