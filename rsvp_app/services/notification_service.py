"""
Host notifications for RSVP changes.

Notifications are best-effort: they are debounced per (event, actor),
rate-limited per host, and never raise into the request that triggered them.
"""

import os
import time
import itertools
import threading
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, Optional, Protocol
from twilio.rest import Client
from ..utils.constants import AppConstants
from ..utils.email import EmailService

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Notification could not be delivered"""

    pass


@dataclass(frozen=True)
class HostContact:
    name: str
    phone_number: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class RsvpNotification:
    guest_or_user_name: str
    event_title: str
    response_type: str
    guest_count: int = 1

    def message(self) -> str:
        response_text = {"yup": "YES", "nope": "NO"}.get(self.response_type, "MAYBE")
        guest_text = ""
        if self.guest_count > 1:
            extra = self.guest_count - 1
            guest_text = f" (bringing {extra} guest{'s' if extra > 1 else ''})"
        return (
            f"RSVP Update: {self.guest_or_user_name} responded {response_text} "
            f'to "{self.event_title}"{guest_text}'
        )


class NotificationSender(Protocol):
    def send(self, host_contact: HostContact, payload: RsvpNotification) -> None: ...


class SmsNotificationSender:
    """Twilio SMS delivery"""

    def __init__(self, client: Optional[Client] = None, from_phone: Optional[str] = None):
        self.from_phone = from_phone or os.getenv("TWILIO_PHONE_NUMBER")
        self.client = client

        if self.client is None:
            account_sid = os.getenv("TWILIO_ACCOUNT_SID")
            auth_token = os.getenv("TWILIO_AUTH_TOKEN")
            if account_sid and auth_token:
                self.client = Client(account_sid, auth_token)
            else:
                logger.warning("Twilio credentials not configured. SMS notifications disabled.")

    def is_configured(self) -> bool:
        return self.client is not None and self.from_phone is not None

    def send(self, host_contact: HostContact, payload: RsvpNotification) -> None:
        if not self.is_configured():
            raise NotificationError("SMS service not configured")
        if not host_contact.phone_number:
            raise NotificationError(f"Host {host_contact.name} has no phone number")

        try:
            message = self.client.messages.create(
                body=payload.message(),
                from_=self.from_phone,
                to=host_contact.phone_number,
            )
        except Exception as e:
            raise NotificationError(f"Failed to send SMS: {str(e)}") from e

        logger.info(f"RSVP SMS sent to host {host_contact.name}. Message SID: {message.sid}")


class EmailNotificationSender:
    """SendGrid email delivery"""

    def __init__(self, email_service: Optional[EmailService] = None):
        self.email_service = email_service or EmailService()

    def send(self, host_contact: HostContact, payload: RsvpNotification) -> None:
        if not host_contact.email:
            raise NotificationError(f"Host {host_contact.name} has no email")

        if not self.email_service.is_configured():
            raise NotificationError("Email service not configured")

        sent = self.email_service.send_rsvp_email(
            host_contact.email, host_contact.name, payload.event_title, payload.message()
        )
        if not sent:
            raise NotificationError(f"Failed to email host {host_contact.name}")


class HostNotificationSender:
    """SMS when Twilio is configured and the host has a phone, otherwise email"""

    def __init__(
        self,
        sms_sender: Optional[SmsNotificationSender] = None,
        email_sender: Optional[EmailNotificationSender] = None,
    ):
        self.sms_sender = sms_sender or SmsNotificationSender()
        self.email_sender = email_sender or EmailNotificationSender()

    def send(self, host_contact: HostContact, payload: RsvpNotification) -> None:
        if host_contact.phone_number and self.sms_sender.is_configured():
            self.sms_sender.send(host_contact, payload)
        else:
            self.email_sender.send(host_contact, payload)


@dataclass
class PendingNotification:
    timer: object
    generation: int
    host_id: int
    host_contact: HostContact
    payload: RsvpNotification


class NotificationScheduler:
    """Debounced, per-host rate-limited notification dispatch.

    Each (event, actor) key holds at most one pending timer; a new change
    restarts it, so only the last change inside the quiet window is sent.
    When a timer fires, the send is dropped if the same host was notified
    less than ``rate_limit_seconds`` ago. Dropped sends are not retried.
    """

    def __init__(
        self,
        sender: NotificationSender,
        debounce_seconds: float = AppConstants.NOTIFICATION_DEBOUNCE_SECONDS,
        rate_limit_seconds: float = AppConstants.HOST_NOTIFICATION_RATE_LIMIT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: Callable[..., object] = threading.Timer,
    ):
        self.sender = sender
        self.debounce_seconds = debounce_seconds
        self.rate_limit_seconds = rate_limit_seconds
        self.clock = clock
        self.timer_factory = timer_factory

        self._lock = threading.Lock()
        self._pending: Dict[Hashable, PendingNotification] = {}
        self._last_sent: Dict[int, float] = {}
        self._generations = itertools.count()
        self.sent_count = 0
        self.dropped_count = 0
        self.failed_count = 0

    def schedule(
        self,
        key: Hashable,
        host_id: int,
        host_contact: HostContact,
        payload: RsvpNotification,
    ) -> None:
        """(Re)start the debounce timer for key; returns immediately"""
        with self._lock:
            generation = next(self._generations)
            timer = self.timer_factory(
                self.debounce_seconds, self._fire, args=(key, generation)
            )
            timer.daemon = True

            previous = self._pending.get(key)
            if previous is not None:
                previous.timer.cancel()
            self._pending[key] = PendingNotification(
                timer, generation, host_id, host_contact, payload
            )

        timer.start()

    def _fire(self, key: Hashable, generation: int) -> None:
        with self._lock:
            pending = self._pending.get(key)
            # Stale timer from before a restart
            if pending is None or pending.generation != generation:
                return
            del self._pending[key]

            now = self.clock()
            last_sent = self._last_sent.get(pending.host_id)
            if last_sent is not None and now - last_sent < self.rate_limit_seconds:
                self.dropped_count += 1
                logger.info(
                    f"Dropping RSVP notification for host {pending.host_id}: rate limited"
                )
                return

            self._last_sent[pending.host_id] = now

        try:
            self.sender.send(pending.host_contact, pending.payload)
        except Exception as e:
            with self._lock:
                self.failed_count += 1
            logger.error(f"RSVP notification to host {pending.host_id} failed: {str(e)}")
            return

        with self._lock:
            self.sent_count += 1

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def prune_expired(self) -> int:
        """Forget host send times older than the rate window"""
        now = self.clock()
        with self._lock:
            expired = [
                host_id
                for host_id, sent_at in self._last_sent.items()
                if now - sent_at >= self.rate_limit_seconds
            ]
            for host_id in expired:
                del self._last_sent[host_id]
        return len(expired)

    def cancel_all(self) -> None:
        with self._lock:
            for pending in self._pending.values():
                pending.timer.cancel()
            self._pending.clear()

    def reset(self) -> None:
        self.cancel_all()
        with self._lock:
            self._last_sent.clear()
            self.sent_count = 0
            self.dropped_count = 0
            self.failed_count = 0

    def get_status(self) -> dict:
        with self._lock:
            return {
                "pending": len(self._pending),
                "tracked_hosts": len(self._last_sent),
                "sent": self.sent_count,
                "dropped": self.dropped_count,
                "failed": self.failed_count,
            }


_scheduler: Optional[NotificationScheduler] = None


def get_notification_scheduler() -> NotificationScheduler:
    """Process-wide scheduler used by the API (FastAPI dependency)"""
    global _scheduler
    if _scheduler is None:
        _scheduler = NotificationScheduler(HostNotificationSender())
    return _scheduler
