"""
Mock outbound message channels.

The storefront sends transactional email (order confirmations, shipping
updates, back-in-stock alerts) and optional SMS. These channels log each send
and keep a history so tests and the demo can inspect what went out. A real
deployment would hand the rendered message to an email/SMS provider here.

Design decisions:
- Every send is logged on the "notifications" logger
- Email carries both an HTML and a plain-text body
- Channels record results for assertions instead of raising on failure
- Failures can be simulated with a fail rate
"""

import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from storefront.config import get_settings

logger = logging.getLogger("notifications")


class ChannelType(str, Enum):
    EMAIL = "email"
    SMS = "sms"


@dataclass
class SendResult:
    """Outcome of one send attempt."""
    success: bool
    channel: ChannelType
    recipient: str
    subject: Optional[str]  # email only
    body: str
    html: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    error: Optional[str] = None

    def __str__(self) -> str:
        status = "ok" if self.success else "failed"
        if self.channel == ChannelType.EMAIL:
            return f"[{status}] EMAIL to {self.recipient}: {self.subject}"
        return f"[{status}] SMS to {self.recipient}: {self.body[:50]}"


class _Channel:
    channel_type: ChannelType

    def __init__(self, fail_rate: float = 0.0):
        """
        Args:
            fail_rate: Probability of a simulated send failure (0.0 to 1.0).
        """
        self.fail_rate = fail_rate
        self.sent_messages: list[SendResult] = []

    def _should_fail(self) -> bool:
        return self.fail_rate > 0 and random.random() < self.fail_rate

    def get_sent_count(self) -> int:
        return len(self.sent_messages)

    def get_successful_sends(self) -> list[SendResult]:
        return [m for m in self.sent_messages if m.success]

    def find_messages_to(self, recipient: str) -> list[SendResult]:
        return [m for m in self.sent_messages if m.recipient == recipient]

    def clear_history(self):
        self.sent_messages.clear()


class EmailChannel(_Channel):
    """Mock transactional email sender."""

    channel_type = ChannelType.EMAIL

    def __init__(self, fail_rate: float = 0.0, from_addr: Optional[str] = None):
        super().__init__(fail_rate)
        self.from_addr = from_addr or get_settings().FROM_EMAIL

    def send(
        self,
        to: str,
        subject: str,
        text: str,
        html: Optional[str] = None,
    ) -> SendResult:
        """
        Send an email.

        Args:
            to: Recipient address
            subject: Subject line
            text: Plain-text body
            html: Optional HTML body

        Returns:
            SendResult describing the attempt
        """
        result = SendResult(
            success=True,
            channel=ChannelType.EMAIL,
            recipient=to,
            subject=subject,
            body=text,
            html=html,
        )
        if self._should_fail():
            result.success = False
            result.error = "Simulated email delivery failure"
            logger.error(f"[EMAIL FAILED] To: {to} | Subject: {subject} | Error: {result.error}")
        else:
            logger.info(f"[EMAIL] From: {self.from_addr} | To: {to} | Subject: {subject}")
            logger.debug(f"[EMAIL BODY] {text}")

        self.sent_messages.append(result)
        return result


class SMSChannel(_Channel):
    """Mock SMS sender."""

    channel_type = ChannelType.SMS
    MAX_LENGTH = 160

    def send(self, to: str, message: str) -> SendResult:
        if len(message) > self.MAX_LENGTH:
            logger.warning(
                f"[SMS] Message length ({len(message)}) exceeds {self.MAX_LENGTH} chars, "
                "may be split into multiple messages"
            )

        result = SendResult(
            success=True,
            channel=ChannelType.SMS,
            recipient=to,
            subject=None,
            body=message,
        )
        if self._should_fail():
            result.success = False
            result.error = "Simulated SMS delivery failure"
            logger.error(f"[SMS FAILED] To: {to} | Error: {result.error}")
        else:
            logger.info(f"[SMS] To: {to} | Message: {message}")

        self.sent_messages.append(result)
        return result


class NotificationChannels:
    """Facade over the email and SMS channels."""

    def __init__(self, email_fail_rate: float = 0.0, sms_fail_rate: float = 0.0):
        self.email = EmailChannel(fail_rate=email_fail_rate)
        self.sms = SMSChannel(fail_rate=sms_fail_rate)

    def send_email(self, to: str, subject: str, text: str, html: Optional[str] = None) -> SendResult:
        return self.email.send(to, subject, text, html)

    def send_sms(self, to: str, message: str) -> SendResult:
        return self.sms.send(to, message)

    def get_all_sent_messages(self) -> list[SendResult]:
        return self.email.sent_messages + self.sms.sent_messages

    def get_total_sent_count(self) -> int:
        return self.email.get_sent_count() + self.sms.get_sent_count()

    def clear_all_history(self):
        self.email.clear_history()
        self.sms.clear_history()
