"""
NeighborHelp Backend: Notifier Interface
=========================================

What:  Abstract contract for telling a recipient that a message arrived.
How:   Concrete notifiers inherit from Notifier and implement
       send_message_notification() and health_check().
Who:   Called by MessageService after the message is committed.

Result, not exception:
    send_message_notification() returns a NotificationResult. A failed
    delivery is an ordinary return value carrying a NotificationError, so
    the fire-and-forget contract is visible in the signature. MessageService
    discards the failure at exactly one call site.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from app.exceptions import NotificationError
from app.models.message import MessagePriority
from app.models.resource import Resource


@dataclass(frozen=True)
class NotificationResult:
    """Outcome of one notification attempt."""

    delivered: bool
    error: Optional[NotificationError] = None

    @classmethod
    def ok(cls) -> "NotificationResult":
        return cls(delivered=True)

    @classmethod
    def failed(cls, error: NotificationError) -> "NotificationResult":
        return cls(delivered=False, error=error)


class Notifier(ABC):
    """
    Abstract interface for message notifications.

    Contract:
        - Receives the PLAINTEXT body, never the stored ciphertext
        - Returns NotificationResult.failed(...) instead of raising
        - Implementations own their transport timeout and circuit breaker

    Implementations:
        - EmailNotifier: Resend.com HTTP API (default)
    """

    @abstractmethod
    async def send_message_notification(
        self,
        recipient_email: str,
        recipient_name: str,
        sender_name: str,
        subject: str,
        body: str,
        priority: MessagePriority,
        contact_method: Optional[str],
        sender_phone: Optional[str],
        resource: Optional[Resource],
    ) -> NotificationResult:
        """
        Notify a recipient about a new message.

        Args:
            recipient_email: Where to deliver the notification
            recipient_name: Display name used in the greeting
            sender_name: Display name of the sender
            subject: Message subject (plain text)
            body: Decrypted message body
            priority: Drives the priority label in the notification
            contact_method: Sender's preferred contact method, if given
            sender_phone: Sender's phone, if given
            resource: The listing the message is about, if any

        Returns:
            NotificationResult; never raises for delivery problems.
        """
        ...

    @abstractmethod
    async def health_check(self) -> str:
        """
        Report notifier status for the health endpoint.

        Returns: "available", "not_configured" or "circuit_open".
        """
        ...
