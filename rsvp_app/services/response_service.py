import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from sqlalchemy.orm import Session
from ..models.event import Event
from ..models.response import ResponseRecord
from ..models.enums import ACCEPTING_STATUSES, ResponseType, RsvpVisibility
from ..utils.constants import AppConstants
from ..utils.locks import KeyedLock
from ..utils.validation import ValidationHelpers
from .actors import Actor, GuestActor, UserActor
from .notification_service import HostContact, NotificationScheduler, RsvpNotification
from .response_store import ResponseStore, StorageError, build_response_store

logger = logging.getLogger(__name__)


class ResponseServiceError(Exception):
    """Base exception for response service errors"""

    pass


class ValidationError(ResponseServiceError):
    """Malformed or missing input"""

    pass


class PolicyError(ResponseServiceError):
    """Input is well-formed but the event's RSVP settings disallow it"""

    pass


class RosterHiddenError(PolicyError):
    """Viewer may not see the event's responses"""

    pass


class EventNotFoundError(ResponseServiceError):
    """Event not found"""

    pass


class ResponseNotFoundError(ResponseServiceError):
    """Response not found"""

    pass


__all__ = [
    "ResponseService",
    "ResponseServiceError",
    "ValidationError",
    "PolicyError",
    "RosterHiddenError",
    "EventNotFoundError",
    "ResponseNotFoundError",
    "StorageError",
    "AggregateCounts",
    "SubmissionResult",
]


@dataclass
class AggregateCounts:
    yup_count: int = 0
    nope_count: int = 0
    maybe_count: int = 0
    attending_total: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "yupCount": self.yup_count,
            "nopeCount": self.nope_count,
            "maybeCount": self.maybe_count,
            "attendingTotal": self.attending_total,
        }


@dataclass
class SubmissionResult:
    record: ResponseRecord
    counts: AggregateCounts
    created: bool


# Serializes read-decide-write for one (event, actor) within this process
_submission_locks = KeyedLock()


def _same_instant(stored: Optional[datetime], written: datetime) -> bool:
    if stored is None:
        return False
    if stored.tzinfo is not None:
        stored = stored.astimezone(timezone.utc).replace(tzinfo=None)
    return stored == written


class ResponseService:
    def __init__(
        self,
        db: Session,
        store: Optional[ResponseStore] = None,
        notifier: Optional[NotificationScheduler] = None,
        locks: Optional[KeyedLock] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = db
        self.store = store or build_response_store(db)
        self.notifier = notifier
        self.locks = locks or _submission_locks
        self.clock = clock

    def get_event_by_slug(self, slug: str) -> Event:
        event = self.db.query(Event).filter(Event.slug == slug).first()
        if not event:
            raise EventNotFoundError(f"Event '{slug}' not found")
        return event

    def submit_response(
        self,
        event: Event,
        actor: Actor,
        response_type: Any,
        guest_count: Optional[int] = None,
        comments: Optional[str] = None,
    ) -> SubmissionResult:
        """Record an actor's response, replacing any earlier one for the event"""

        response_type = self._validate_response_type(response_type)
        actor = self._validate_actor(actor)
        guest_count = self._normalize_guest_count(response_type, guest_count)
        comments = self._validate_comments(comments)

        self._check_event_accepting(event)
        self._check_policy(event, actor, guest_count)

        with self.locks.hold((event.id, actor.actor_key)):
            existing = self.store.find(event.id, actor.actor_key)
            values = self._build_values(
                event, actor, response_type, guest_count, comments, existing
            )
            record = self.store.upsert(values)

        # Created only if the stored row carries this write's created_at
        created = existing is None and _same_instant(
            record.created_at, values["created_at"]
        )
        logger.info(
            f"{'Recorded' if created else 'Updated'} {response_type} response "
            f"for {actor.actor_key} on event {event.id}"
        )

        counts = self.get_aggregate_counts(event)
        self._schedule_host_notification(event, actor, record)

        return SubmissionResult(record=record, counts=counts, created=created)

    def get_aggregate_counts(self, event: Event) -> AggregateCounts:
        """Fresh per-type counts, one per actor"""

        counts = AggregateCounts()
        for response_type, actors, headcount in self.store.count_by_type(event.id):
            if response_type == ResponseType.YUP.value:
                counts.yup_count = actors
                counts.attending_total = headcount
            elif response_type == ResponseType.NOPE.value:
                counts.nope_count = actors
            elif response_type == ResponseType.MAYBE.value:
                counts.maybe_count = actors
        return counts

    def is_roster_visible_to(
        self,
        event: Event,
        viewer: Optional[UserActor],
        counts: Optional[AggregateCounts] = None,
    ) -> bool:
        if isinstance(viewer, UserActor) and viewer.user_id == event.host_id:
            return True

        if (
            event.rsvp_visibility == RsvpVisibility.PUBLIC.value
            and event.show_rsvps_to_invitees
        ):
            return True

        if event.rsvp_visibility == RsvpVisibility.THRESHOLD.value:
            if counts is None:
                counts = self.get_aggregate_counts(event)
            return counts.yup_count >= event.rsvp_visibility_threshold

        return False

    def get_roster(
        self, event: Event, viewer: Optional[UserActor]
    ) -> List[ResponseRecord]:
        if not self.is_roster_visible_to(event, viewer):
            raise RosterHiddenError("Responses for this event are not visible")
        return self.store.list_by_event(event.id)

    def get_user_response(self, event: Event, actor: UserActor) -> ResponseRecord:
        record = self.store.find(event.id, actor.actor_key)
        if record is None:
            raise ResponseNotFoundError("You have not responded to this event")
        return record

    def get_guest_response(self, event: Event, response_token: str) -> ResponseRecord:
        """Look up a guest's own response so they can review or change it"""
        if not response_token or not response_token.strip():
            raise ValidationError("Missing response token")

        record = self.store.find_by_token(event.id, response_token.strip())
        if record is None:
            raise ResponseNotFoundError("Response not found")
        return record

    # Validation helpers

    def _validate_response_type(self, response_type: Any) -> str:
        value = getattr(response_type, "value", response_type)
        try:
            return ResponseType(value).value
        except ValueError:
            raise ValidationError(
                'Invalid response type. Must be "yup", "nope", or "maybe"'
            )

    def _validate_actor(self, actor: Actor) -> Actor:
        if isinstance(actor, UserActor):
            if actor.user_id is None:
                raise ValidationError("Authenticated actor requires a user id")
            return actor

        if isinstance(actor, GuestActor):
            name = ValidationHelpers.clean_text(actor.name)
            email = ValidationHelpers.clean_text(actor.email)
            phone = ValidationHelpers.clean_text(actor.phone)

            if not name or not email:
                raise ValidationError("Guest responses require a name and email")
            if len(name) > AppConstants.MAX_GUEST_NAME_LENGTH:
                raise ValidationError("Guest name is too long")
            if not ValidationHelpers.validate_email(email):
                raise ValidationError("Valid email is required")
            if not ValidationHelpers.validate_phone(phone):
                raise ValidationError("Invalid phone number")

            return GuestActor(name=name, email=email, phone=phone)

        raise ValidationError("Unknown responder")

    def _normalize_guest_count(self, response_type: str, guest_count: Optional[int]) -> int:
        if response_type != ResponseType.YUP.value or guest_count is None:
            return AppConstants.MIN_GUEST_COUNT

        if isinstance(guest_count, bool) or not isinstance(guest_count, int):
            raise ValidationError("Guest count must be a whole number")
        if not (
            AppConstants.MIN_GUEST_COUNT <= guest_count <= AppConstants.MAX_GUEST_COUNT
        ):
            raise ValidationError(
                f"Guest count must be between {AppConstants.MIN_GUEST_COUNT} "
                f"and {AppConstants.MAX_GUEST_COUNT}"
            )
        return guest_count

    def _validate_comments(self, comments: Optional[str]) -> Optional[str]:
        comments = ValidationHelpers.clean_text(comments)
        if comments and len(comments) > AppConstants.MAX_COMMENT_LENGTH:
            raise ValidationError(
                f"Comments must be at most {AppConstants.MAX_COMMENT_LENGTH} characters"
            )
        return comments

    # Event policy

    def _check_event_accepting(self, event: Event) -> None:
        if event.status not in ACCEPTING_STATUSES:
            raise PolicyError(f"Event is {event.status} and not accepting responses")

        if event.date and event.date < self.clock():
            raise PolicyError("Cannot RSVP to past events")

    def _check_policy(self, event: Event, actor: Actor, guest_count: int) -> None:
        if isinstance(actor, GuestActor) and not event.allow_guest_rsvp:
            raise PolicyError("guest RSVP not allowed")

        if guest_count > 1 and not event.allow_plus_one:
            raise PolicyError("plus-one not allowed")

        limit = event.max_guests_per_rsvp
        if limit is not None and guest_count > limit:
            raise PolicyError(
                f"guest count exceeds limit: you can only RSVP for up to {limit} "
                f"guest{'s' if limit != 1 else ''}"
            )

    # Persistence

    def _build_values(
        self,
        event: Event,
        actor: Actor,
        response_type: str,
        guest_count: int,
        comments: Optional[str],
        existing: Optional[ResponseRecord],
    ) -> Dict[str, Any]:
        now = self.clock()
        values = {
            "event_id": event.id,
            "actor_key": actor.actor_key,
            "response_type": response_type,
            "guest_count": guest_count,
            "comments": comments,
            "created_at": existing.created_at if existing else now,
            "updated_at": now,
        }

        if isinstance(actor, UserActor):
            values.update(
                user_id=actor.user_id,
                is_guest=False,
                guest_name=None,
                guest_email=None,
                guest_phone=None,
                response_token=None,
            )
        elif isinstance(actor, GuestActor):
            values.update(
                user_id=None,
                is_guest=True,
                guest_name=actor.name,
                guest_email=actor.email,
                guest_phone=actor.phone,
                response_token=(
                    existing.response_token
                    if existing and existing.response_token
                    else uuid.uuid4().hex
                ),
            )

        return values

    # Notifications

    def _schedule_host_notification(
        self, event: Event, actor: Actor, record: ResponseRecord
    ) -> None:
        if self.notifier is None:
            return
        if not isinstance(actor, UserActor) or actor.user_id == event.host_id:
            return

        try:
            host = event.host
            if host is None:
                logger.warning(f"Event {event.id} has no host to notify")
                return

            contact = HostContact(
                name=host.display_name,
                phone_number=host.phone_number,
                email=host.email,
            )
            payload = RsvpNotification(
                guest_or_user_name=actor.name or "Someone",
                event_title=event.title,
                response_type=record.response_type,
                guest_count=record.guest_count,
            )
            self.notifier.schedule(
                (event.id, actor.actor_key), event.host_id, contact, payload
            )
        except Exception as e:
            logger.error(f"Failed to schedule RSVP notification: {str(e)}")
