"""
NeighborHelp Backend: Message Delivery Service
===============================================

What:  Business logic for sending, reading, listing and deleting messages.
How:   Validates the request, encrypts the body with ContentCipher, commits
       the row, then notifies the recipient through the Notifier. Every
       message handed back is decrypted (or replaced by a placeholder).
Who:   Called by the /api/messages route handlers.

Send Workflow:
    1. Reject self-send             (no lookup, no cipher call, no write)
    2. Resolve recipient            → ValidationError if missing
    3. Resolve resource (optional)  → ValidationError if missing or hidden
    4. Encrypt body                 (strictly before the row is built)
    5. INSERT + COMMIT              (message is durable from here on)
    6. Notify recipient (plaintext) → failure logged and discarded
    7. Return the stored message, decrypted

Deletion:
    Sender deletes    → deleted_by_sender = deleted_by_recipient = True
    Recipient deletes → deleted_by_recipient = True
    Both flags set    → row is physically removed
"""

import logging
from datetime import datetime, timezone
from typing import List

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import (
    AuthorizationError,
    DatabaseError,
    InvalidCiphertextError,
    NotFoundError,
    NotificationError,
    ValidationError,
)
from app.models.message import Message
from app.models.resource import Resource
from app.models.user import User, UserRole
from app.schemas.message import (
    MessageListResponse,
    MessageResponse,
    MessageUserResponse,
    PartyInfo,
    ResourceInfo,
    SendMessageRequest,
)
from app.services.content_cipher import ContentCipher
from app.services.notifier_base import NotificationResult, Notifier

logger = logging.getLogger(__name__)

PLACEHOLDER = "[Message content unavailable - encrypted with previous key]"


class MessageService:
    """
    Orchestrates message delivery.

    Collaborators are injected: the cipher holds the derived key and the
    notifier owns the email transport. One instance is built at startup
    and shared by all requests; it keeps no per-request state.
    """

    def __init__(self, cipher: ContentCipher, notifier: Notifier):
        self.cipher = cipher
        self.notifier = notifier

    # ── Send ──────────────────────────────────────────────────────────────

    async def send(
        self,
        db: AsyncSession,
        request: SendMessageRequest,
        sender: User,
    ) -> MessageResponse:
        """
        Store an encrypted message and notify its recipient.

        Raises:
            ValidationError: self-send, unknown recipient, unknown or
                non-public resource (→ 400)
            DatabaseError: the insert or commit failed (→ 500)
        """
        if request.recipient_id == sender.id:
            raise ValidationError(
                message="You cannot send a message to yourself",
                field="recipient_id",
            )

        try:
            recipient = await db.get(User, request.recipient_id)
            if recipient is None:
                raise ValidationError(
                    message=f"Recipient not found with ID: {request.recipient_id}",
                    field="recipient_id",
                )

            resource = None
            if request.resource_id is not None:
                resource = await db.get(Resource, request.resource_id)
                if resource is None:
                    raise ValidationError(
                        message=f"Resource not found with ID: {request.resource_id}",
                        field="resource_id",
                    )
                if not resource.is_publicly_visible:
                    raise ValidationError(
                        message="This resource is not available for messaging",
                        field="resource_id",
                        context={"status": resource.status.value},
                    )

            message = Message(
                sender=sender,
                recipient=recipient,
                resource=resource,
                subject=request.subject,
                encrypted_content=self.cipher.encrypt(request.content),
                priority=request.priority,
                contact_method=request.contact_method,
                sender_phone=request.sender_phone,
                is_read=False,
                deleted_by_sender=False,
                deleted_by_recipient=False,
            )
            db.add(message)
            await db.flush()
            await db.commit()

        except SQLAlchemyError as e:
            logger.error("Database error storing message from user %d: %s", sender.id, str(e))
            raise DatabaseError(
                message="Could not send the message. Please try again.",
                context={"sender_id": sender.id},
            ) from e

        logger.info(
            "Message %d stored (sender=%d, recipient=%d, resource=%s, priority=%s)",
            message.id,
            sender.id,
            recipient.id,
            resource.id if resource else None,
            message.priority.value,
        )

        await self._notify(message, request.content)

        return self._to_response(message)

    async def _notify(self, message: Message, plaintext: str) -> None:
        """
        Best-effort notification. The only place a delivery failure is dropped.

        The message is already committed; nothing here can undo or fail the send.
        """
        try:
            result = await self.notifier.send_message_notification(
                recipient_email=message.recipient.email,
                recipient_name=message.recipient.display_name,
                sender_name=message.sender.display_name,
                subject=message.subject,
                body=plaintext,
                priority=message.priority,
                contact_method=message.contact_method,
                sender_phone=message.sender_phone,
                resource=message.resource,
            )
        except Exception as e:
            result = NotificationResult.failed(
                NotificationError(
                    message="Notifier raised instead of returning a result",
                    context={"error_type": type(e).__name__},
                )
            )

        if not result.delivered:
            logger.warning(
                "Notification for message %d not delivered: %s %s",
                message.id,
                result.error.message if result.error else "unknown error",
                result.error.context if result.error else {},
            )

    # ── Single message ────────────────────────────────────────────────────

    async def get_message(self, db: AsyncSession, message_id: int, reader: User) -> MessageResponse:
        """
        Fetch one message for its sender or recipient.

        Raises:
            NotFoundError: no such message, or the reader deleted it (→ 404)
            AuthorizationError: reader is neither party (→ 403)
        """
        message = await self._load(db, message_id)

        if reader.id == message.sender_id:
            if message.deleted_by_sender:
                raise NotFoundError(resource="message", resource_id=str(message_id))
        elif reader.id == message.recipient_id:
            if message.deleted_by_recipient:
                raise NotFoundError(resource="message", resource_id=str(message_id))
        else:
            raise AuthorizationError(
                message="You are not allowed to view this message",
                context={"message_id": message_id, "user_id": reader.id},
            )

        return self._to_response(message)

    async def mark_as_read(self, db: AsyncSession, message_id: int, reader: User) -> MessageResponse:
        """
        Mark a message read. Recipient only; repeated calls keep the first read_at.

        Raises:
            NotFoundError: no such message, or the recipient deleted it (→ 404)
            AuthorizationError: reader is not the recipient (→ 403)
        """
        message = await self._load(db, message_id)

        if reader.id != message.recipient_id:
            raise AuthorizationError(
                message="You can only mark your own messages as read",
                context={"message_id": message_id, "user_id": reader.id},
            )
        if message.deleted_by_recipient:
            raise NotFoundError(resource="message", resource_id=str(message_id))

        if not message.is_read:
            message.is_read = True
            message.read_at = datetime.now(timezone.utc)
            try:
                await db.flush()
            except SQLAlchemyError as e:
                logger.error("Database error marking message %d read: %s", message_id, str(e))
                raise DatabaseError(context={"message_id": message_id}) from e

        return self._to_response(message)

    # ── Lists ─────────────────────────────────────────────────────────────

    async def list_inbox(
        self, db: AsyncSession, user: User, page: int = 0, size: int = 20
    ) -> MessageListResponse:
        return await self._list(
            db,
            [Message.recipient_id == user.id, Message.deleted_by_recipient.is_(False)],
            page,
            size,
        )

    async def list_sent(
        self, db: AsyncSession, user: User, page: int = 0, size: int = 20
    ) -> MessageListResponse:
        return await self._list(
            db,
            [Message.sender_id == user.id, Message.deleted_by_sender.is_(False)],
            page,
            size,
        )

    async def list_unread(
        self, db: AsyncSession, user: User, page: int = 0, size: int = 20
    ) -> MessageListResponse:
        return await self._list(
            db,
            [
                Message.recipient_id == user.id,
                Message.deleted_by_recipient.is_(False),
                Message.is_read.is_(False),
            ],
            page,
            size,
        )

    async def _list(self, db: AsyncSession, criteria: list, page: int, size: int) -> MessageListResponse:
        """
        Offset pagination, newest first.

        Query plan (inbox):
            SELECT ... WHERE recipient_id = :me AND NOT deleted_by_recipient
            ORDER BY created_at DESC, id DESC LIMIT :size OFFSET :page*size
            → idx_messages_recipient_created
        """
        try:
            total = (
                await db.execute(select(func.count()).select_from(Message).where(*criteria))
            ).scalar_one()

            result = await db.execute(
                select(Message)
                .where(*criteria)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .offset(page * size)
                .limit(size)
            )
            messages = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Database error listing messages: %s", str(e))
            raise DatabaseError(message="Could not retrieve messages. Please try again.") from e

        return MessageListResponse(
            messages=[self._to_response(m) for m in messages],
            total_count=total,
            page=page,
            size=size,
            has_more=(page + 1) * size < total,
        )

    async def unread_count(self, db: AsyncSession, user: User) -> int:
        try:
            result = await db.execute(
                select(func.count())
                .select_from(Message)
                .where(
                    Message.recipient_id == user.id,
                    Message.deleted_by_recipient.is_(False),
                    Message.is_read.is_(False),
                )
            )
            return result.scalar_one()
        except SQLAlchemyError as e:
            logger.error("Database error counting unread messages: %s", str(e))
            raise DatabaseError() from e

    async def list_available_recipients(self, db: AsyncSession, user: User) -> List[MessageUserResponse]:
        """
        Accounts the caller may write to: enabled, not deleted, role USER,
        ordered by username. The caller and privileged roles are excluded.
        """
        try:
            result = await db.execute(
                select(User)
                .where(
                    User.enabled.is_(True),
                    User.deleted.is_(False),
                    User.role == UserRole.USER,
                    User.id != user.id,
                )
                .order_by(User.username)
            )
            users = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error("Database error listing recipients: %s", str(e))
            raise DatabaseError() from e

        return [MessageUserResponse.model_validate(u) for u in users]

    # ── Delete ────────────────────────────────────────────────────────────

    async def delete(self, db: AsyncSession, message_id: int, caller: User) -> None:
        """
        Soft-delete for the caller's side; purge once both sides are gone.

        A sender retracts the message from both mailboxes. A recipient only
        hides it from their own.

        Raises:
            NotFoundError: no such message, or already deleted by the caller (→ 404)
            AuthorizationError: caller is neither party (→ 403)
        """
        message = await self._load(db, message_id)

        if caller.id == message.sender_id:
            message.deleted_by_sender = True
            message.deleted_by_recipient = True
        elif caller.id == message.recipient_id:
            if message.deleted_by_recipient:
                raise NotFoundError(resource="message", resource_id=str(message_id))
            message.deleted_by_recipient = True
        else:
            raise AuthorizationError(
                message="You are not allowed to delete this message",
                context={"message_id": message_id, "user_id": caller.id},
            )

        try:
            if message.deleted_by_sender and message.deleted_by_recipient:
                await db.delete(message)
                logger.info("Message %d purged (deleted by both parties)", message_id)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error deleting message %d: %s", message_id, str(e))
            raise DatabaseError(context={"message_id": message_id}) from e

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _load(self, db: AsyncSession, message_id: int) -> Message:
        try:
            message = await db.get(Message, message_id)
        except SQLAlchemyError as e:
            logger.error("Database error fetching message %d: %s", message_id, str(e))
            raise DatabaseError(context={"message_id": message_id}) from e

        if message is None:
            raise NotFoundError(resource="message", resource_id=str(message_id))
        return message

    def _decrypt_for_display(self, message: Message) -> str:
        # Only a stale key is tolerated; malformed or truncated tokens propagate
        try:
            return self.cipher.decrypt(message.encrypted_content)
        except InvalidCiphertextError:
            logger.warning("Message %d was encrypted under a previous key", message.id)
            return PLACEHOLDER

    def _to_response(self, message: Message) -> MessageResponse:
        return MessageResponse(
            id=message.id,
            subject=message.subject,
            content=self._decrypt_for_display(message),
            priority=message.priority,
            is_read=message.is_read,
            contact_method=message.contact_method,
            sender_phone=message.sender_phone,
            created_at=message.created_at,
            read_at=message.read_at,
            sender=PartyInfo.model_validate(message.sender),
            recipient=PartyInfo.model_validate(message.recipient),
            resource=ResourceInfo.model_validate(message.resource) if message.resource else None,
        )
