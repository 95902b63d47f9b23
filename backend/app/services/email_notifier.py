"""
NeighborHelp Backend: Email Notifier (Resend)
==============================================

What:  Notifier implementation that emails the recipient through the
       Resend.com HTTP API.
How:   One shared httpx.AsyncClient posts {from, to, subject, html} to the
       Resend endpoint. A CircuitBreaker guards the provider; every failure
       is converted into NotificationResult.failed(...).
Who:   Built once in the application lifespan and handed to MessageService.

Error Handling Chain:
    No API key configured  → failed(NotificationError), no HTTP call
    Circuit OPEN           → failed(CircuitBreakerOpenError), no HTTP call
    5xx response           → record failure → failed(NotificationError)
    4xx response           → provider reachable, breaker untouched
                             except to close a HALF_OPEN trial
                             → failed(NotificationError)
    Timeout / network      → record failure → failed(NotificationError)
    2xx response           → record success → ok()

Notifications are never retried. A lost email is acceptable; the message
itself is already committed and visible in the recipient's inbox.
"""

import html
import logging
import time
from typing import Optional

import httpx

from app.config import settings
from app.exceptions import CircuitBreakerOpenError, NotificationError
from app.models.message import MessagePriority
from app.models.resource import Resource
from app.services.circuit_breaker import CircuitBreaker
from app.services.notifier_base import NotificationResult, Notifier

logger = logging.getLogger(__name__)

PRIORITY_COLORS = {
    MessagePriority.HIGH: "#F39C12",
    MessagePriority.URGENT: "#E74C3C",
}
PRIORITY_LABELS = {
    MessagePriority.HIGH: "High Priority",
    MessagePriority.URGENT: "Urgent Priority",
}
DEFAULT_PRIORITY_COLOR = "#3498DB"
DEFAULT_PRIORITY_LABEL = "Normal Priority"


def build_subject(subject: str, resource: Optional[Resource]) -> str:
    if resource is not None:
        return f"New message about your resource: {resource.title}"
    return f"New message on NeighborHelp: {subject}"


def render_message_email(
    recipient_name: str,
    sender_name: str,
    subject: str,
    body: str,
    priority: MessagePriority,
    contact_method: Optional[str],
    sender_phone: Optional[str],
    resource: Optional[Resource],
    base_url: str,
) -> str:
    """
    Render the HTML notification.

    Every user-supplied value is HTML-escaped before it is placed in the
    template; line breaks in the body become <br>.
    """
    color = PRIORITY_COLORS.get(priority, DEFAULT_PRIORITY_COLOR)
    label = PRIORITY_LABELS.get(priority, DEFAULT_PRIORITY_LABEL)
    base_url = base_url.rstrip("/")

    body_html = html.escape(body).replace("\r\n", "\n").replace("\n", "<br>")

    resource_block = ""
    resource_button = ""
    if resource is not None:
        resource_block = f"""
            <div style="background-color: #E8F5E8; border: 1px solid #27AE60; border-radius: 8px; padding: 15px; margin: 20px 0;">
                <h3 style="color: #333; margin-top: 0;">About Your Resource</h3>
                <p style="color: #666; margin: 5px 0;"><strong>Title:</strong> {html.escape(resource.title)}</p>
                <p style="color: #666; margin: 5px 0;"><strong>Location:</strong> {html.escape(resource.city or "Location not specified")}</p>
            </div>"""
        resource_button = f"""
            <a href="{base_url}/resources/{resource.id}"
               style="background-color: #3498DB; color: white; padding: 12px 24px; text-decoration: none; border-radius: 4px; font-weight: bold; display: inline-block; margin: 0 10px;">
                View Your Resource
            </a>"""

    phone_line = ""
    if sender_phone:
        phone_line = (
            '<p style="color: #666; margin: 5px 0;"><strong>Phone:</strong> '
            f"{html.escape(sender_phone)}</p>"
        )

    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background-color: #27AE60; padding: 20px; text-align: center; border-radius: 8px 8px 0 0;">
        <h1 style="color: white; margin: 0;">NeighborHelp</h1>
        <p style="color: white; margin: 5px 0 0 0;">Community Connection Platform</p>
    </div>
    <div style="background-color: #f9f9f9; padding: 30px; border-radius: 0 0 8px 8px;">
        <h2 style="color: #333;">Hello {html.escape(recipient_name)}!</h2>
        <p style="color: #666; font-size: 16px;">
            You have received a new message from <strong>{html.escape(sender_name)}</strong>.
        </p>
        {resource_block}
        <div style="background-color: white; border-left: 4px solid {color}; border-radius: 4px; padding: 20px; margin: 20px 0;">
            <h3 style="color: #333; margin: 0 0 10px 0;">{html.escape(subject)}</h3>
            <span style="background-color: {color}; color: white; padding: 4px 8px; border-radius: 4px; font-size: 12px; font-weight: bold;">{label}</span>
            <p style="color: #666; line-height: 1.6; margin: 10px 0 0 0;">{body_html}</p>
        </div>
        <div style="background-color: #F0F8FF; border: 1px solid #3498DB; border-radius: 8px; padding: 15px; margin: 20px 0;">
            <h4 style="color: #333; margin-top: 0;">Contact Information:</h4>
            <p style="color: #666; margin: 5px 0;"><strong>From:</strong> {html.escape(sender_name)}</p>
            <p style="color: #666; margin: 5px 0;"><strong>Preferred Contact Method:</strong> {html.escape(contact_method or "Not specified")}</p>
            {phone_line}
        </div>
        <div style="text-align: center; margin-top: 30px;">
            <a href="{base_url}/messages"
               style="background-color: #27AE60; color: white; padding: 12px 24px; text-decoration: none; border-radius: 4px; font-weight: bold; display: inline-block; margin: 0 10px;">
                Reply in NeighborHelp
            </a>{resource_button}
        </div>
        <p style="color: #999; font-size: 12px; text-align: center; margin-top: 30px;">
            This is an automated notification. Please do not reply to this email.
        </p>
    </div>
</div>
"""


class EmailNotifier(Notifier):
    """
    Resend.com implementation of the Notifier contract.

    Architecture:
        - Single instance per process (holds the circuit breaker state)
        - One pooled httpx.AsyncClient; closed in the lifespan shutdown
        - `transport` is injectable so tests can use httpx.MockTransport
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        sender: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self._api_key = settings.resend_api_key if api_key is None else api_key
        self._api_url = api_url or settings.resend_api_url
        self._sender = sender or settings.email_from
        self._base_url = base_url or settings.app_base_url
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            name="resend",
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )
        self._client = httpx.AsyncClient(
            timeout=timeout or settings.notifier_timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
        )

        logger.info(
            "EmailNotifier initialized (configured=%s, circuit_breaker(threshold=%d, recovery=%ds))",
            bool(self._api_key),
            self.circuit_breaker.failure_threshold,
            self.circuit_breaker.recovery_timeout,
        )

    async def close(self) -> None:
        await self._client.aclose()

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
        if not self._api_key:
            return NotificationResult.failed(
                NotificationError(
                    message="Email provider is not configured",
                    context={"reason": "missing_api_key"},
                )
            )

        payload = {
            "from": self._sender,
            "to": [recipient_email],
            "subject": build_subject(subject, resource),
            "html": render_message_email(
                recipient_name=recipient_name,
                sender_name=sender_name,
                subject=subject,
                body=body,
                priority=priority,
                contact_method=contact_method,
                sender_phone=sender_phone,
                resource=resource,
                base_url=self._base_url,
            ),
        }

        try:
            self.circuit_breaker.can_execute()
        except CircuitBreakerOpenError as e:
            return NotificationResult.failed(e)

        start_time = time.monotonic()
        try:
            response = await self._client.post(self._api_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            if status_code >= 500:
                self.circuit_breaker.record_failure()
            elif self.circuit_breaker.state == CircuitBreaker.HALF_OPEN:
                # The provider answered; a rejected request (bad address,
                # quota) is not an outage
                self.circuit_breaker.record_success()
            logger.warning("Resend rejected notification with HTTP %d", status_code)
            return NotificationResult.failed(
                NotificationError(
                    message=f"Email provider returned HTTP {status_code}",
                    context={"status_code": status_code},
                )
            )
        except httpx.HTTPError as e:
            self.circuit_breaker.record_failure()
            duration_ms = (time.monotonic() - start_time) * 1000
            logger.warning(
                "Resend call failed after %.0fms: %s", duration_ms, type(e).__name__
            )
            return NotificationResult.failed(
                NotificationError(
                    message="Email provider could not be reached",
                    context={"error_type": type(e).__name__},
                )
            )
        except Exception:
            # Never leave a HALF_OPEN trial unresolved
            self.circuit_breaker.record_failure()
            raise

        self.circuit_breaker.record_success()
        duration_ms = (time.monotonic() - start_time) * 1000
        logger.info("Notification email accepted by Resend in %.0fms", duration_ms)
        return NotificationResult.ok()

    async def health_check(self) -> str:
        """
        Report notifier status without calling the provider.

        A probe email would cost quota, so only local state is inspected.
        """
        if not self._api_key:
            return "not_configured"
        if self.circuit_breaker.state == CircuitBreaker.OPEN:
            return "circuit_open"
        return "available"
