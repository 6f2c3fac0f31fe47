import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock

from rsvp_app.models import ResponseRecord
from rsvp_app.models.enums import EventStatus, ResponseType, RsvpVisibility
from rsvp_app.services.actors import GuestActor, UserActor, actor_from_user
from rsvp_app.services.response_service import (
    EventNotFoundError,
    PolicyError,
    ResponseNotFoundError,
    ResponseService,
    RosterHiddenError,
    StorageError,
    ValidationError,
)
from rsvp_app.services.response_store import SQLAlchemyResponseStore
from rsvp_app.utils.locks import KeyedLock

from tests.utils.factories import create_random_event, create_random_user
from tests.utils.notifications import fire_all


def _rows(db_session, event):
    db_session.expire_all()
    return db_session.query(ResponseRecord).filter_by(event_id=event.id).all()


def _guest(email="guest@example.com", name="Gus Guest", phone=None):
    return GuestActor(name=name, email=email, phone=phone)


# --- Upsert semantics ---


def test_first_response_is_created(service, event):
    result = service.submit_response(event, _guest(), "yup", guest_count=2)

    assert result.created is True
    assert result.record.response_type == "yup"
    assert result.record.guest_count == 2
    assert result.record.is_guest is True
    assert result.record.actor_key == "guest:guest@example.com"
    assert result.counts.yup_count == 1
    assert result.counts.attending_total == 2


def test_repeat_submission_is_idempotent(service, event, db_session):
    first = service.submit_response(event, _guest(), "maybe", comments="Will try")
    second = service.submit_response(event, _guest(), "maybe", comments="Will try")

    assert second.created is False
    assert second.record.id == first.record.id
    assert second.record.response_type == "maybe"
    assert second.record.comments == "Will try"
    assert second.counts == first.counts
    assert len(_rows(db_session, event)) == 1


def test_later_submission_overwrites_earlier(service, event, db_session):
    first = service.submit_response(
        event, _guest(), "yup", guest_count=3, comments="Bringing snacks"
    )
    created_at = first.record.created_at
    token = first.record.response_token

    second = service.submit_response(event, _guest(), ResponseType.NOPE)

    assert second.record.id == first.record.id
    assert second.record.response_type == "nope"
    assert second.record.guest_count == 1
    assert second.record.comments is None
    assert second.record.created_at == created_at
    assert second.record.updated_at >= created_at
    assert second.record.response_token == token

    assert second.counts.yup_count == 0
    assert second.counts.nope_count == 1
    assert second.counts.attending_total == 0
    assert len(_rows(db_session, event)) == 1


def test_guest_email_is_normalized_for_identity(service, event, db_session):
    service.submit_response(event, _guest(email="Pat@Example.com"), "yup")
    result = service.submit_response(event, _guest(email="  pat@example.COM "), "nope")

    assert result.created is False
    assert result.record.actor_key == "guest:pat@example.com"
    assert result.counts.yup_count == 0
    assert result.counts.nope_count == 1
    assert len(_rows(db_session, event)) == 1


def test_distinct_guests_are_counted_separately(service, event):
    service.submit_response(event, _guest(email="a@example.com"), "yup", guest_count=2)
    result = service.submit_response(event, _guest(email="b@example.com"), "nope")

    assert result.counts.to_dict() == {
        "yupCount": 1,
        "nopeCount": 1,
        "maybeCount": 0,
        "attendingTotal": 2,
    }


def test_guest_changes_mind_then_second_guest_responds(service, db_session, host):
    event = create_random_event(
        db_session, host, max_guests_per_rsvp=2, allow_plus_one=True
    )

    result = service.submit_response(
        event, _guest(email="a@example.com"), "yup", guest_count=2
    )
    assert (result.counts.yup_count, result.counts.nope_count, result.counts.maybe_count) == (1, 0, 0)

    result = service.submit_response(event, _guest(email="a@example.com"), "nope")
    assert (result.counts.yup_count, result.counts.nope_count, result.counts.maybe_count) == (0, 1, 0)

    result = service.submit_response(event, _guest(email="b@example.com"), "maybe")
    assert (result.counts.yup_count, result.counts.nope_count, result.counts.maybe_count) == (0, 1, 1)


def test_same_guest_on_two_events_is_independent(service, event, db_session, host):
    other = create_random_event(db_session, host)

    service.submit_response(event, _guest(), "yup")
    result = service.submit_response(other, _guest(), "nope")

    assert result.created is True
    assert service.get_aggregate_counts(event).yup_count == 1
    assert service.get_aggregate_counts(other).nope_count == 1


def test_user_response_has_no_guest_fields(service, event, db_session):
    user = create_random_user(db_session, display_name="Uma User")

    result = service.submit_response(event, actor_from_user(user), "yup")

    assert result.record.is_guest is False
    assert result.record.user_id == user.id
    assert result.record.actor_key == f"user:{user.id}"
    assert result.record.guest_email is None
    assert result.record.response_token is None


def test_guest_keeps_response_token(service, event):
    first = service.submit_response(event, _guest(), "maybe")
    second = service.submit_response(event, _guest(name="Gus G."), "yup")

    assert first.record.response_token
    assert second.record.response_token == first.record.response_token
    assert second.record.guest_name == "Gus G."


def test_non_yup_resets_guest_count(service, event):
    result = service.submit_response(event, _guest(), "maybe", guest_count=3)

    assert result.record.guest_count == 1


def test_guest_count_defaults_to_one(service, event):
    result = service.submit_response(event, _guest(), "yup")

    assert result.record.guest_count == 1
    assert result.counts.attending_total == 1


# --- Policy ---


def test_guest_count_at_event_limit_is_accepted(service, event):
    assert event.max_guests_per_rsvp == 3

    result = service.submit_response(event, _guest(), "yup", guest_count=3)

    assert result.record.guest_count == 3


def test_guest_count_over_event_limit_is_rejected(service, event, db_session):
    with pytest.raises(PolicyError) as exc_info:
        service.submit_response(event, _guest(), "yup", guest_count=4)

    assert "guest count exceeds limit" in str(exc_info.value)
    assert "3" in str(exc_info.value)
    assert _rows(db_session, event) == []


def test_rejected_change_leaves_previous_response(service, event, db_session):
    service.submit_response(event, _guest(), "yup", guest_count=2)

    with pytest.raises(PolicyError):
        service.submit_response(event, _guest(), "yup", guest_count=4)

    rows = _rows(db_session, event)
    assert len(rows) == 1
    assert rows[0].guest_count == 2


def test_guest_rsvp_disabled(service, db_session, host):
    event = create_random_event(db_session, host, allow_guest_rsvp=False)
    user = create_random_user(db_session)

    with pytest.raises(PolicyError, match="guest RSVP not allowed"):
        service.submit_response(event, _guest(), "yup")

    result = service.submit_response(event, actor_from_user(user), "yup")
    assert result.created is True
    assert len(_rows(db_session, event)) == 1


def test_plus_one_disabled(service, db_session, host):
    event = create_random_event(db_session, host, allow_plus_one=False)

    with pytest.raises(PolicyError, match="plus-one not allowed"):
        service.submit_response(event, _guest(), "yup", guest_count=2)

    result = service.submit_response(event, _guest(), "yup", guest_count=1)
    assert result.record.guest_count == 1


@pytest.mark.parametrize(
    "status", [EventStatus.CLOSED.value, EventStatus.CANCELLED.value]
)
def test_event_not_accepting(service, db_session, host, status):
    event = create_random_event(db_session, host, status=status)

    with pytest.raises(PolicyError, match="not accepting responses"):
        service.submit_response(event, _guest(), "yup")


def test_active_event_accepts(service, db_session, host):
    event = create_random_event(db_session, host, status=EventStatus.ACTIVE.value)

    assert service.submit_response(event, _guest(), "yup").created is True


def test_past_event_rejected(service, db_session, host):
    event = create_random_event(
        db_session, host, date=datetime.utcnow() - timedelta(days=1)
    )

    with pytest.raises(PolicyError, match="Cannot RSVP to past events"):
        service.submit_response(event, _guest(), "yup")


def test_clock_decides_past_events(db_session, event):
    later = event.date + timedelta(hours=1)
    service = ResponseService(
        db_session,
        store=SQLAlchemyResponseStore(db_session),
        locks=KeyedLock(),
        clock=lambda: later,
    )

    with pytest.raises(PolicyError):
        service.submit_response(event, _guest(), "nope")


def test_host_may_respond_without_notifying_self(service, event, host, timers):
    result = service.submit_response(event, actor_from_user(host), "yup")

    assert result.created is True
    assert timers == []


# --- Validation ---


@pytest.mark.parametrize("response_type", ["yes", "", None, "YUP"])
def test_invalid_response_type(service, event, response_type):
    with pytest.raises(ValidationError, match="Invalid response type"):
        service.submit_response(event, _guest(), response_type)


@pytest.mark.parametrize(
    "actor",
    [
        GuestActor(name="", email="guest@example.com"),
        GuestActor(name="Gus", email="   "),
        GuestActor(name="Gus", email="not-an-email"),
        GuestActor(name="Gus", email="guest@example.com", phone="12"),
        GuestActor(name="G" * 101, email="guest@example.com"),
    ],
)
def test_invalid_guest_identity(service, event, actor, db_session):
    with pytest.raises(ValidationError):
        service.submit_response(event, actor, "yup")

    assert _rows(db_session, event) == []


@pytest.mark.parametrize("guest_count", [0, -1, 11, 2.5, "2", True])
def test_invalid_guest_count(service, db_session, host, guest_count):
    event = create_random_event(db_session, host, max_guests_per_rsvp=10)

    with pytest.raises(ValidationError):
        service.submit_response(event, _guest(), "yup", guest_count=guest_count)


def test_hard_cap_is_validation_not_policy(service, db_session, host):
    event = create_random_event(db_session, host, max_guests_per_rsvp=50)

    with pytest.raises(ValidationError, match="between 1 and 10"):
        service.submit_response(event, _guest(), "yup", guest_count=11)


def test_comments_too_long(service, event):
    with pytest.raises(ValidationError, match="Comments"):
        service.submit_response(event, _guest(), "maybe", comments="x" * 501)


def test_guest_fields_are_trimmed(service, event):
    actor = GuestActor(name="  Gus  ", email=" Gus@Example.com ", phone=" ")

    result = service.submit_response(event, actor, "yup", comments="   ")

    assert result.record.guest_name == "Gus"
    assert result.record.guest_email == "Gus@Example.com"
    assert result.record.guest_phone is None
    assert result.record.comments is None


def test_validation_precedes_policy(service, db_session, host):
    event = create_random_event(db_session, host, status=EventStatus.CLOSED.value)

    with pytest.raises(ValidationError):
        service.submit_response(event, _guest(), "attending")


# --- Lookups ---


def test_get_event_by_slug(service, event):
    assert service.get_event_by_slug(event.slug).id == event.id

    with pytest.raises(EventNotFoundError):
        service.get_event_by_slug("no-such-event")


def test_get_user_response(service, event, db_session):
    user = create_random_user(db_session)
    actor = actor_from_user(user)

    with pytest.raises(ResponseNotFoundError):
        service.get_user_response(event, actor)

    service.submit_response(event, actor, "maybe")
    assert service.get_user_response(event, actor).response_type == "maybe"


def test_get_guest_response_by_token(service, event):
    result = service.submit_response(event, _guest(), "yup")
    token = result.record.response_token

    assert service.get_guest_response(event, token).id == result.record.id
    assert service.get_guest_response(event, f"  {token} ").id == result.record.id

    with pytest.raises(ResponseNotFoundError):
        service.get_guest_response(event, "unknown")
    with pytest.raises(ValidationError):
        service.get_guest_response(event, "  ")


def test_aggregate_counts_empty_event(service, event):
    counts = service.get_aggregate_counts(event)

    assert counts.to_dict() == {
        "yupCount": 0,
        "nopeCount": 0,
        "maybeCount": 0,
        "attendingTotal": 0,
    }


# --- Roster visibility ---


def test_threshold_visibility(service, db_session, host):
    event = create_random_event(
        db_session,
        host,
        rsvp_visibility=RsvpVisibility.THRESHOLD.value,
        rsvp_visibility_threshold=5,
    )
    viewer = actor_from_user(create_random_user(db_session))

    for i in range(4):
        service.submit_response(event, _guest(email=f"g{i}@example.com"), "yup")

    assert service.is_roster_visible_to(event, viewer) is False
    assert service.is_roster_visible_to(event, None) is False
    assert service.is_roster_visible_to(event, actor_from_user(host)) is True
    with pytest.raises(RosterHiddenError):
        service.get_roster(event, viewer)

    service.submit_response(event, _guest(email="g4@example.com"), "yup")

    assert service.is_roster_visible_to(event, viewer) is True
    assert len(service.get_roster(event, viewer)) == 5


def test_maybe_does_not_count_toward_threshold(service, db_session, host):
    event = create_random_event(
        db_session,
        host,
        rsvp_visibility=RsvpVisibility.THRESHOLD.value,
        rsvp_visibility_threshold=1,
    )
    service.submit_response(event, _guest(), "maybe")

    assert service.is_roster_visible_to(event, None) is False


def test_public_visibility_respects_invitee_switch(service, db_session, host):
    shown = create_random_event(db_session, host)
    hidden = create_random_event(db_session, host, show_rsvps_to_invitees=False)

    assert service.is_roster_visible_to(shown, None) is True
    assert service.is_roster_visible_to(hidden, None) is False
    assert service.is_roster_visible_to(hidden, actor_from_user(host)) is True


def test_invitees_visibility_is_host_only(service, db_session, host):
    event = create_random_event(
        db_session, host, rsvp_visibility=RsvpVisibility.INVITEES.value
    )
    other = actor_from_user(create_random_user(db_session))

    assert service.is_roster_visible_to(event, other) is False
    assert service.is_roster_visible_to(event, actor_from_user(host)) is True


# --- Failures ---


def test_storage_failure_propagates(db_session, event):
    store = MagicMock()
    store.find.return_value = None
    store.upsert.side_effect = StorageError("database is locked")
    service = ResponseService(db_session, store=store, locks=KeyedLock())

    with pytest.raises(StorageError):
        service.submit_response(event, _guest(), "yup")

    store.count_by_type.assert_not_called()


def test_lock_is_released_after_failure(db_session, event):
    locks = KeyedLock()
    store = MagicMock()
    store.find.return_value = None
    store.upsert.side_effect = StorageError("boom")
    service = ResponseService(db_session, store=store, locks=locks)

    with pytest.raises(StorageError):
        service.submit_response(event, _guest(), "yup")

    assert len(locks) == 0


def test_notifier_failure_does_not_fail_submission(db_session, event):
    notifier = MagicMock()
    notifier.schedule.side_effect = RuntimeError("scheduler down")
    service = ResponseService(
        db_session,
        store=SQLAlchemyResponseStore(db_session),
        notifier=notifier,
        locks=KeyedLock(),
    )
    user = create_random_user(db_session)

    result = service.submit_response(event, actor_from_user(user), "yup")

    assert result.created is True
    notifier.schedule.assert_called_once()


# --- Notifications ---


def test_user_response_notifies_host(service, event, host, db_session, timers, sender):
    user = create_random_user(db_session, display_name="Uma User")

    service.submit_response(event, actor_from_user(user), "yup", guest_count=3)

    assert len(timers) == 1
    assert timers[0].interval == 3.0
    assert sender.sent == []

    fire_all(timers)

    contact, payload = sender.sent[0]
    assert contact.phone_number == host.phone_number
    assert contact.email == host.email
    assert payload.message() == (
        'RSVP Update: Uma User responded YES to "Rooftop Dinner" (bringing 2 guests)'
    )


def test_rapid_changes_send_last_state_only(service, event, db_session, timers, sender):
    user = create_random_user(db_session, display_name="Uma User")
    actor = actor_from_user(user)

    service.submit_response(event, actor, "yup")
    service.submit_response(event, actor, "maybe")
    service.submit_response(event, actor, "nope")

    assert [timer.cancelled for timer in timers] == [True, True, False]

    fire_all(timers)

    assert len(sender.sent) == 1
    assert sender.sent[0][1].response_type == "nope"


def test_guest_response_does_not_notify(service, event, timers):
    service.submit_response(event, _guest(), "yup")

    assert timers == []


def test_no_notifier_configured(db_session, event):
    service = ResponseService(
        db_session, store=SQLAlchemyResponseStore(db_session), locks=KeyedLock()
    )
    user = create_random_user(db_session)

    assert service.submit_response(event, UserActor(user_id=user.id), "yup").created


# --- Cross-process first responses ---


class StaleReadStore(SQLAlchemyResponseStore):
    """Store whose first lookup misses a row another worker has just committed."""

    def __init__(self, db):
        super().__init__(db)
        self.stale_reads = 1

    def find(self, event_id, actor_key):
        if self.stale_reads:
            self.stale_reads -= 1
            return None
        return super().find(event_id, actor_key)


def _worker(db, clock_value):
    # Separate locks: the workers share nothing but the database
    return ResponseService(
        db,
        store=StaleReadStore(db),
        locks=KeyedLock(),
        clock=lambda: clock_value,
    )


def test_concurrent_first_responses_merge(db_session, other_session, event):
    first_at = datetime.utcnow().replace(microsecond=0)
    second_at = first_at + timedelta(seconds=1)
    worker_a = _worker(db_session, first_at)
    worker_b = _worker(other_session, second_at)
    other_event = other_session.get(type(event), event.id)

    first = worker_a.submit_response(event, _guest(), "yup", guest_count=2)
    first_id = first.record.id
    first_token = first.record.response_token

    second = worker_b.submit_response(
        other_event, _guest(email="GUEST@example.com"), "maybe"
    )

    assert first.created is True
    assert second.created is False

    rows = _rows(db_session, event)
    assert len(rows) == 1
    assert rows[0].id == first_id
    assert rows[0].created_at == first_at
    assert rows[0].updated_at == second_at
    assert rows[0].response_type == "maybe"
    assert rows[0].response_token == first_token
    assert second.counts.to_dict() == {
        "yupCount": 0,
        "nopeCount": 0,
        "maybeCount": 1,
        "attendingTotal": 0,
    }


def test_concurrent_first_user_responses_merge(db_session, other_session, event):
    user = create_random_user(db_session)
    first_at = datetime.utcnow().replace(microsecond=0)
    worker_a = _worker(db_session, first_at)
    worker_b = _worker(other_session, first_at + timedelta(seconds=1))
    other_event = other_session.get(type(event), event.id)

    worker_a.submit_response(event, UserActor(user_id=user.id), "nope")
    second = worker_b.submit_response(other_event, UserActor(user_id=user.id), "yup")

    assert second.created is False
    rows = _rows(db_session, event)
    assert [(row.actor_key, row.response_type) for row in rows] == [
        (f"user:{user.id}", "yup")
    ]
