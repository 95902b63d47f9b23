"""
NeighborHelp Backend: Message Service Unit Tests
=================================================

What:  Tests for MessageService against an in-memory database.
How:   Real ContentCipher, real SQLAlchemy session (aiosqlite), AsyncMock
       notifier. Ordering checks use MagicMock spies.

What we test:
    ✅ Send stores ciphertext, returns plaintext, notifies with plaintext
    ✅ Self-send rejected before any lookup, cipher or write
    ✅ Unknown recipient / unknown or hidden resource rejected
    ✅ Notifier exceptions and failed results never fail the send
    ✅ Stale-key bodies become the placeholder; malformed bodies propagate
    ✅ Deletion asymmetry and purge
    ✅ Mark-as-read idempotence and authorization
    ✅ Lists, unread count, pagination, available recipients
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select

from app.exceptions import (
    AuthorizationError,
    DecryptionError,
    InvalidCiphertextError,
    MalformedCiphertextError,
    NotFoundError,
    NotificationError,
    ValidationError,
)
from app.models.message import Message, MessagePriority
from app.models.user import User
from app.schemas.message import SendMessageRequest
from app.services.content_cipher import ContentCipher, derive_key
from app.services.message_service import PLACEHOLDER, MessageService
from app.services.notifier_base import NotificationResult


def _request(recipient_id, content="Is the tutoring offer still open?", **kwargs):
    return SendMessageRequest(
        recipient_id=recipient_id,
        subject=kwargs.pop("subject", "Tutoring"),
        content=content,
        **kwargs,
    )


async def _message_count(db) -> int:
    return (await db.execute(select(func.count()).select_from(Message))).scalar_one()


class TestSend:
    """Tests for the send workflow."""

    @pytest.mark.asyncio
    async def test_send_stores_encrypted_body(self, db_session, users, message_service, cipher):
        alice, bob = users["alice"], users["bob"]

        response = await message_service.send(
            db_session, _request(bob.id, content="My phone is 06 12 34 56 78"), alice
        )

        assert response.content == "My phone is 06 12 34 56 78"
        assert response.is_read is False
        assert response.sender.id == alice.id
        assert response.recipient.id == bob.id

        stored = await db_session.get(Message, response.id)
        assert stored.encrypted_content != "My phone is 06 12 34 56 78"
        assert cipher.decrypt(stored.encrypted_content) == "My phone is 06 12 34 56 78"
        assert stored.deleted_by_sender is False
        assert stored.deleted_by_recipient is False

    @pytest.mark.asyncio
    async def test_send_notifies_recipient_with_plaintext(
        self, db_session, users, resources, message_service, mock_notifier
    ):
        alice, bob = users["alice"], users["bob"]

        await message_service.send(
            db_session,
            _request(
                bob.id,
                content="Hello!",
                resource_id=resources["active"].id,
                priority=MessagePriority.URGENT,
                contact_method="phone",
                sender_phone="0612345678",
            ),
            alice,
        )

        mock_notifier.send_message_notification.assert_awaited_once()
        kwargs = mock_notifier.send_message_notification.await_args.kwargs
        assert kwargs["recipient_email"] == "bob@example.com"
        assert kwargs["recipient_name"] == "bob"
        assert kwargs["sender_name"] == "alice"
        assert kwargs["body"] == "Hello!"
        assert kwargs["priority"] == MessagePriority.URGENT
        assert kwargs["sender_phone"] == "0612345678"
        assert kwargs["resource"] is resources["active"]

    @pytest.mark.asyncio
    async def test_organization_display_name_used(self, db_session, users, message_service, mock_notifier):
        response = await message_service.send(
            db_session, _request(users["alice"].id), users["foodbank"]
        )

        assert response.sender.display_name == "Lyon Food Bank"
        kwargs = mock_notifier.send_message_notification.await_args.kwargs
        assert kwargs["sender_name"] == "Lyon Food Bank"

    @pytest.mark.asyncio
    async def test_self_send_rejected_before_any_side_effect(self, mock_notifier):
        """Self-send must fail before lookups, encryption or persistence."""
        cipher_spy = MagicMock(spec=ContentCipher)
        db = AsyncMock()
        db.add = MagicMock()
        service = MessageService(cipher=cipher_spy, notifier=mock_notifier)
        sender = User(id=1, username="alice", email="alice@example.com", enabled=True)

        with pytest.raises(ValidationError) as exc_info:
            await service.send(db, _request(1), sender)

        assert exc_info.value.field == "recipient_id"
        cipher_spy.encrypt.assert_not_called()
        db.get.assert_not_awaited()
        db.add.assert_not_called()
        db.commit.assert_not_awaited()
        mock_notifier.send_message_notification.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_recipient(self, db_session, users, message_service, mock_notifier):
        with pytest.raises(ValidationError) as exc_info:
            await message_service.send(db_session, _request(9999), users["alice"])

        assert exc_info.value.message == "Recipient not found with ID: 9999"
        assert await _message_count(db_session) == 0
        mock_notifier.send_message_notification.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_resource(self, db_session, users, message_service):
        with pytest.raises(ValidationError) as exc_info:
            await message_service.send(
                db_session, _request(users["bob"].id, resource_id=4242), users["alice"]
            )

        assert exc_info.value.field == "resource_id"
        assert await _message_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_hidden_resource(self, db_session, users, resources, message_service):
        with pytest.raises(ValidationError) as exc_info:
            await message_service.send(
                db_session,
                _request(users["bob"].id, resource_id=resources["pending"].id),
                users["alice"],
            )

        assert exc_info.value.message == "This resource is not available for messaging"
        assert await _message_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_notifier_exception_does_not_fail_send(
        self, db_session, users, message_service, mock_notifier
    ):
        mock_notifier.send_message_notification.side_effect = RuntimeError("SMTP down")

        response = await message_service.send(db_session, _request(users["bob"].id), users["alice"])

        assert response.content == "Is the tutoring offer still open?"
        assert await _message_count(db_session) == 1

    @pytest.mark.asyncio
    async def test_failed_notification_result_does_not_fail_send(
        self, db_session, users, message_service, mock_notifier, caplog
    ):
        mock_notifier.send_message_notification.return_value = NotificationResult.failed(
            NotificationError(message="Email provider returned HTTP 500")
        )

        response = await message_service.send(db_session, _request(users["bob"].id), users["alice"])

        assert response.id is not None
        assert await _message_count(db_session) == 1
        assert "not delivered" in caplog.text

    @pytest.mark.asyncio
    async def test_message_committed_before_notification(
        self, db_session, users, message_service, mock_notifier
    ):
        """The notifier is only called once the row is committed."""
        transaction_open_during_notify = []

        async def checking_notify(**kwargs):
            transaction_open_during_notify.append(db_session.in_transaction())
            return NotificationResult.ok()

        mock_notifier.send_message_notification.side_effect = checking_notify

        await message_service.send(db_session, _request(users["bob"].id), users["alice"])

        assert transaction_open_during_notify == [False]


class TestReadAndMarkAsRead:
    """Tests for get_message and mark_as_read."""

    @pytest.mark.asyncio
    async def test_parties_can_read(self, db_session, users, message_service):
        sent = await message_service.send(db_session, _request(users["bob"].id), users["alice"])

        for reader in (users["alice"], users["bob"]):
            fetched = await message_service.get_message(db_session, sent.id, reader)
            assert fetched.content == "Is the tutoring offer still open?"

    @pytest.mark.asyncio
    async def test_third_party_cannot_read(self, db_session, users, message_service):
        sent = await message_service.send(db_session, _request(users["bob"].id), users["alice"])

        with pytest.raises(AuthorizationError):
            await message_service.get_message(db_session, sent.id, users["carol"])

    @pytest.mark.asyncio
    async def test_unknown_message(self, db_session, users, message_service):
        with pytest.raises(NotFoundError):
            await message_service.get_message(db_session, 12345, users["alice"])

    @pytest.mark.asyncio
    async def test_mark_as_read_is_idempotent(self, db_session, users, message_service):
        sent = await message_service.send(db_session, _request(users["bob"].id), users["alice"])

        first = await message_service.mark_as_read(db_session, sent.id, users["bob"])
        second = await message_service.mark_as_read(db_session, sent.id, users["bob"])

        assert first.is_read is True
        assert second.is_read is True
        assert first.read_at is not None
        assert second.read_at == first.read_at
        assert second.read_at.utcoffset() == timedelta(0)

    @pytest.mark.asyncio
    async def test_non_recipient_cannot_mark_as_read(self, db_session, users, message_service):
        sent = await message_service.send(db_session, _request(users["bob"].id), users["alice"])

        for intruder in (users["alice"], users["carol"]):
            with pytest.raises(AuthorizationError):
                await message_service.mark_as_read(db_session, sent.id, intruder)

        stored = await db_session.get(Message, sent.id)
        assert stored.is_read is False
        assert stored.read_at is None


class TestDecryptionOnRead:
    """Stale-key tolerance and corruption handling on the read path."""

    @pytest.mark.asyncio
    async def test_stale_key_message_shows_placeholder_in_inbox(
        self, db_session, users, message_service
    ):
        old_cipher = ContentCipher(derive_key("previous-secret", "previous-salt"))
        db_session.add(
            Message(
                sender=users["alice"],
                recipient=users["bob"],
                subject="Old message",
                encrypted_content=old_cipher.encrypt("Written before the key rotation happened"),
            )
        )
        await db_session.flush()
        await message_service.send(
            db_session, _request(users["bob"].id, content="Fresh message"), users["alice"]
        )

        inbox = await message_service.list_inbox(db_session, users["bob"])

        contents = {m.subject: m.content for m in inbox.messages}
        assert contents["Old message"] == PLACEHOLDER
        assert contents["Tutoring"] == "Fresh message"

    @pytest.mark.asyncio
    async def test_malformed_content_propagates(self, db_session, users, message_service):
        db_session.add(
            Message(
                sender=users["alice"],
                recipient=users["bob"],
                subject="Corrupted",
                encrypted_content="%%% not base64 %%%",
            )
        )
        await db_session.flush()

        with pytest.raises(MalformedCiphertextError):
            await message_service.list_inbox(db_session, users["bob"])

    @pytest.mark.asyncio
    async def test_empty_content_propagates(self, db_session, users, message_service):
        db_session.add(
            Message(
                sender=users["alice"],
                recipient=users["bob"],
                subject="Wiped",
                encrypted_content="",
            )
        )
        await db_session.flush()

        with pytest.raises(DecryptionError) as exc_info:
            await message_service.list_inbox(db_session, users["bob"])
        assert not isinstance(exc_info.value, InvalidCiphertextError)


class TestDelete:
    """Deletion asymmetry: sender retracts for both, recipient hides for self."""

    @pytest.mark.asyncio
    async def test_sender_delete_purges_message(self, db_session, users, message_service):
        sent = await message_service.send(db_session, _request(users["bob"].id), users["alice"])

        await message_service.delete(db_session, sent.id, users["alice"])

        assert await db_session.get(Message, sent.id) is None
        for party in (users["alice"], users["bob"]):
            with pytest.raises(NotFoundError):
                await message_service.get_message(db_session, sent.id, party)

    @pytest.mark.asyncio
    async def test_recipient_delete_keeps_sender_copy(self, db_session, users, message_service):
        sent = await message_service.send(db_session, _request(users["bob"].id), users["alice"])

        await message_service.delete(db_session, sent.id, users["bob"])

        stored = await db_session.get(Message, sent.id)
        assert stored.deleted_by_recipient is True
        assert stored.deleted_by_sender is False

        sent_box = await message_service.list_sent(db_session, users["alice"])
        assert [m.id for m in sent_box.messages] == [sent.id]

        inbox = await message_service.list_inbox(db_session, users["bob"])
        assert inbox.total_count == 0

        with pytest.raises(NotFoundError):
            await message_service.get_message(db_session, sent.id, users["bob"])

    @pytest.mark.asyncio
    async def test_sender_delete_after_recipient_delete_purges(
        self, db_session, users, message_service
    ):
        sent = await message_service.send(db_session, _request(users["bob"].id), users["alice"])

        await message_service.delete(db_session, sent.id, users["bob"])
        await message_service.delete(db_session, sent.id, users["alice"])

        assert await db_session.get(Message, sent.id) is None

    @pytest.mark.asyncio
    async def test_third_party_cannot_delete(self, db_session, users, message_service):
        sent = await message_service.send(db_session, _request(users["bob"].id), users["alice"])

        with pytest.raises(AuthorizationError):
            await message_service.delete(db_session, sent.id, users["carol"])

        stored = await db_session.get(Message, sent.id)
        assert stored.deleted_by_sender is False
        assert stored.deleted_by_recipient is False


class TestListing:
    """Inbox, sent, unread, counts and recipients."""

    @pytest.mark.asyncio
    async def test_inbox_newest_first_with_pagination(self, db_session, users, message_service):
        ids = []
        for subject in ("first", "second", "third"):
            sent = await message_service.send(
                db_session, _request(users["bob"].id, subject=subject), users["alice"]
            )
            ids.append(sent.id)

        page0 = await message_service.list_inbox(db_session, users["bob"], page=0, size=2)
        page1 = await message_service.list_inbox(db_session, users["bob"], page=1, size=2)

        assert page0.total_count == 3
        assert page0.has_more is True
        assert [m.subject for m in page0.messages] == ["third", "second"]
        assert [m.id for m in page1.messages] == [ids[0]]
        assert page1.has_more is False

    @pytest.mark.asyncio
    async def test_unread_list_and_count(self, db_session, users, message_service):
        first = await message_service.send(db_session, _request(users["bob"].id), users["alice"])
        await message_service.send(db_session, _request(users["bob"].id), users["carol"])
        await message_service.mark_as_read(db_session, first.id, users["bob"])

        unread = await message_service.list_unread(db_session, users["bob"])

        assert unread.total_count == 1
        assert unread.messages[0].sender.username == "carol"
        assert await message_service.unread_count(db_session, users["bob"]) == 1
        assert await message_service.unread_count(db_session, users["alice"]) == 0

    @pytest.mark.asyncio
    async def test_available_recipients(self, db_session, users, message_service):
        recipients = await message_service.list_available_recipients(db_session, users["alice"])

        assert [u.username for u in recipients] == ["bob", "carol", "foodbank"]
        assert recipients[2].display_name == "Lyon Food Bank"
