"""
Tests for the booking conflict guard and the appointment lifecycle.
"""

import pytest
from sqlmodel import Session, select

from barbershop import repository
from barbershop.booking import (
    cancel_booking,
    create_booking,
    try_create_booking,
    update_booking,
    update_booking_status,
)
from barbershop.errors import Conflict, Forbidden, InvalidInput, NotFound, OutOfWindow, RejectionReason
from barbershop.models import ACTIVE_STATUSES, Booking, User

from .conftest import MONDAY, NOW, SUNDAY, TUESDAY, at


def actor(user: User) -> dict:
    return {"id": user.id, "role": user.role}


@pytest.fixture
def book(session, barber, client_user, haircut):
    """Create a booking for the default barber/client, 60 min unless told otherwise."""

    def _book(starts_at, duration_minutes=60, now=NOW, barber_id=None, client_id=None):
        return try_create_booking(
            session,
            barber_id=barber_id or barber.id,
            client_id=client_id or client_user.id,
            service_id=haircut.id,
            starts_at=starts_at,
            duration_minutes=duration_minutes,
            now=now,
        )

    return _book


class TestTryCreateBooking:
    def test_creates_pending_booking(self, book, barber, client_user):
        booking = book(at(MONDAY, 10))

        assert booking.id is not None
        assert booking.status == "pending"
        assert booking.barber_id == barber.id
        assert booking.client_id == client_user.id
        assert booking.duration_minutes == 60

    def test_start_time_stays_naive_local_time(self, book, session):
        booking = book(at(MONDAY, 10))
        session.expire_all()

        stored = session.get(Booking, booking.id)

        assert stored.starts_at == at(MONDAY, 10)
        assert stored.starts_at.tzinfo is None

    @pytest.mark.parametrize("starts_at", [at(MONDAY, 7), NOW])
    def test_rejects_past_start(self, book, starts_at):
        with pytest.raises(OutOfWindow) as exc_info:
            book(starts_at)

        assert exc_info.value.reason == RejectionReason.PAST_DATE

    def test_past_date_is_checked_before_barber(self, book):
        with pytest.raises(OutOfWindow) as exc_info:
            book(at(MONDAY, 7), barber_id=9999)

        assert exc_info.value.reason == RejectionReason.PAST_DATE

    def test_unknown_barber(self, book):
        with pytest.raises(NotFound) as exc_info:
            book(at(MONDAY, 10), barber_id=9999)

        assert exc_info.value.reason == RejectionReason.BARBER_NOT_FOUND

    def test_unavailable_barber(self, session, book, barber):
        barber.is_available = False
        session.add(barber)
        session.commit()

        with pytest.raises(NotFound) as exc_info:
            book(at(MONDAY, 10))

        assert exc_info.value.reason == RejectionReason.BARBER_NOT_FOUND

    def test_deactivated_barber_user(self, session, book, barber_user):
        barber_user.is_active = False
        session.add(barber_user)
        session.commit()

        with pytest.raises(NotFound):
            book(at(MONDAY, 10))

    def test_day_without_working_hours(self, book):
        with pytest.raises(OutOfWindow) as exc_info:
            book(at(SUNDAY, 10))

        assert exc_info.value.reason == RejectionReason.OUTSIDE_WORKING_HOURS

    @pytest.mark.parametrize("hour,minute", [(8, 30), (11, 30), (12, 0)])
    def test_interval_must_fit_working_hours(self, book, hour, minute):
        with pytest.raises(OutOfWindow) as exc_info:
            book(at(MONDAY, hour, minute))

        assert exc_info.value.reason == RejectionReason.OUTSIDE_WORKING_HOURS

    def test_overlapping_booking_is_rejected(self, book):
        book(at(MONDAY, 10))

        with pytest.raises(Conflict) as exc_info:
            book(at(MONDAY, 10, 30), duration_minutes=30)

        assert exc_info.value.reason == RejectionReason.SLOT_TAKEN

    def test_adjacent_bookings_are_allowed(self, book):
        book(at(MONDAY, 10))
        book(at(MONDAY, 9))
        book(at(MONDAY, 11))

    def test_cancelled_booking_frees_its_slot(self, session, book):
        first = book(at(MONDAY, 10))
        repository.update_booking_status(session, first, "cancelled")
        session.commit()

        second = book(at(MONDAY, 10))

        assert second.id != first.id
        assert second.status == "pending"

    def test_other_barbers_bookings_do_not_block(self, book, other_barber):
        book(at(MONDAY, 10))
        booking = book(at(MONDAY, 10), barber_id=other_barber.id)

        assert booking.barber_id == other_barber.id

    def test_rejects_non_positive_duration(self, book):
        with pytest.raises(InvalidInput) as exc_info:
            book(at(MONDAY, 10), duration_minutes=0)

        assert exc_info.value.reason == RejectionReason.INVALID_DURATION

    def test_session_usable_after_rejection(self, book):
        book(at(MONDAY, 10))
        with pytest.raises(Conflict):
            book(at(MONDAY, 10))

        assert book(at(MONDAY, 11)).status == "pending"


class TestConflictRetry:
    def test_lost_insert_race_is_retried_once(self, session, book, monkeypatch):
        book(at(MONDAY, 10))
        calls = []

        # simulate a stale read: the guard never sees the existing booking,
        # so only the unique index can stop the insert
        def stale(*args, **kwargs):
            calls.append(args)
            return []

        monkeypatch.setattr(repository, "list_active_bookings", stale)

        with pytest.raises(Conflict) as exc_info:
            book(at(MONDAY, 10))

        assert exc_info.value.reason == RejectionReason.SLOT_TAKEN
        assert len(calls) == 2

    def test_retry_sees_the_winner(self, session, book, monkeypatch):
        book(at(MONDAY, 10))
        real = repository.list_active_bookings
        calls = []

        def stale_once(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                return []
            return real(*args, **kwargs)

        monkeypatch.setattr(repository, "list_active_bookings", stale_once)

        with pytest.raises(Conflict) as exc_info:
            book(at(MONDAY, 10))

        assert exc_info.value.reason == RejectionReason.SLOT_TAKEN
        assert len(calls) == 2
        active = session.exec(select(Booking).where(Booking.status == "pending")).all()
        assert len(active) == 1


class TestCreateBooking:
    def test_uses_service_duration(self, session, barber, client_user, beard_trim, reminders):
        booking = create_booking(
            session, barber.id, client_user.id, beard_trim.id, at(TUESDAY, 10), NOW,
            notes="short on the sides", reminders=reminders,
        )

        assert booking.duration_minutes == 30
        assert booking.notes == "short on the sides"
        assert reminders.get(booking.id) is not None

    def test_unknown_service(self, session, barber, client_user):
        with pytest.raises(NotFound) as exc_info:
            create_booking(session, barber.id, client_user.id, 9999, at(TUESDAY, 10), NOW)

        assert exc_info.value.reason == RejectionReason.SERVICE_NOT_FOUND

    def test_inactive_service(self, session, barber, client_user, haircut):
        haircut.is_active = False
        session.add(haircut)
        session.commit()

        with pytest.raises(NotFound) as exc_info:
            create_booking(session, barber.id, client_user.id, haircut.id, at(TUESDAY, 10), NOW)

        assert exc_info.value.reason == RejectionReason.SERVICE_NOT_FOUND

    def test_sunday_is_out_of_window(self, session, barber, client_user, haircut):
        with pytest.raises(OutOfWindow) as exc_info:
            create_booking(session, barber.id, client_user.id, haircut.id, at(SUNDAY, 10), NOW)

        assert exc_info.value.kind == "OutOfWindow"


class TestLifecycle:
    def test_client_cancels_ahead_of_lead_time(self, book, session, client_user, reminders):
        booking = book(at(MONDAY, 10))
        reminders.schedule(booking)

        cancelled = cancel_booking(session, booking.id, actor(client_user), NOW, reminders=reminders)

        assert cancelled.status == "cancelled"
        assert reminders.get(booking.id) is None

    def test_client_cannot_cancel_within_lead_time(self, book, session, client_user):
        now = at(MONDAY, 9, 30)
        booking = book(at(MONDAY, 10), now=now)

        with pytest.raises(Forbidden) as exc_info:
            cancel_booking(session, booking.id, actor(client_user), now)

        assert exc_info.value.reason == RejectionReason.LEAD_TIME_VIOLATION
        session.refresh(booking)
        assert booking.status == "pending"

    def test_lead_time_is_strict(self, book, session, client_user):
        booking = book(at(MONDAY, 10))

        with pytest.raises(Forbidden):
            cancel_booking(session, booking.id, actor(client_user), at(MONDAY, 9))

    def test_barber_confirms_then_completes(self, book, session, barber_user, reminders):
        booking = book(at(MONDAY, 10))

        confirmed = update_booking_status(session, booking.id, "confirmed", actor(barber_user), NOW)
        assert confirmed.status == "confirmed"

        reminders.schedule(confirmed)
        completed = update_booking_status(
            session, booking.id, "completed", actor(barber_user), at(MONDAY, 11), reminders=reminders
        )
        assert completed.status == "completed"
        assert len(reminders) == 0

    def test_pending_cannot_be_completed(self, book, session, barber_user):
        booking = book(at(MONDAY, 10))

        with pytest.raises(Conflict) as exc_info:
            update_booking_status(session, booking.id, "completed", actor(barber_user), NOW)

        assert exc_info.value.reason == RejectionReason.INVALID_TRANSITION

    @pytest.mark.parametrize("terminal", ["completed", "cancelled"])
    @pytest.mark.parametrize("target", ["pending", "confirmed", "completed", "cancelled"])
    def test_terminal_states(self, book, session, admin, terminal, target):
        booking = book(at(MONDAY, 10))
        repository.update_booking_status(session, booking, terminal)
        session.commit()

        with pytest.raises(Conflict) as exc_info:
            update_booking_status(session, booking.id, target, actor(admin), NOW)

        assert exc_info.value.reason == RejectionReason.INVALID_TRANSITION

    def test_client_cannot_confirm(self, book, session, client_user):
        booking = book(at(MONDAY, 10))

        with pytest.raises(Forbidden) as exc_info:
            update_booking_status(session, booking.id, "confirmed", actor(client_user), NOW)

        assert exc_info.value.reason == RejectionReason.NOT_ALLOWED

    def test_other_client_cannot_cancel(self, book, session, other_client):
        booking = book(at(MONDAY, 10))

        with pytest.raises(Forbidden) as exc_info:
            cancel_booking(session, booking.id, actor(other_client), NOW)

        assert exc_info.value.reason == RejectionReason.NOT_ALLOWED

    def test_other_barber_cannot_confirm(self, book, session, other_barber):
        booking = book(at(MONDAY, 10))
        other_barber_user = session.get(User, other_barber.user_id)

        with pytest.raises(Forbidden):
            update_booking_status(session, booking.id, "confirmed", actor(other_barber_user), NOW)

    def test_barber_and_admin_cancel_at_will(self, book, session, barber_user, admin):
        now = at(MONDAY, 9, 55)
        first = book(at(MONDAY, 10), now=at(MONDAY, 8))
        second = book(at(MONDAY, 11), now=at(MONDAY, 8))

        assert cancel_booking(session, first.id, actor(barber_user), now).status == "cancelled"
        assert cancel_booking(session, second.id, actor(admin), at(MONDAY, 10, 59)).status == "cancelled"

    def test_stale_confirm_cannot_revive_cancelled_booking(
        self, book, engine, session, client_user, other_client, barber_user
    ):
        booking = book(at(TUESDAY, 10))

        with Session(engine) as barber_session:
            # the barber loaded the booking while it was still pending
            assert barber_session.get(Booking, booking.id).status == "pending"

            cancel_booking(session, booking.id, actor(client_user), NOW)
            rebooked = book(at(TUESDAY, 10, 30), client_id=other_client.id)

            with pytest.raises(Conflict) as exc_info:
                update_booking_status(barber_session, booking.id, "confirmed", actor(barber_user), NOW)

        assert exc_info.value.reason == RejectionReason.INVALID_TRANSITION
        active = session.exec(select(Booking).where(Booking.status.in_(ACTIVE_STATUSES))).all()
        assert [b.id for b in active] == [rebooked.id]

    def test_unknown_booking(self, session, admin):
        with pytest.raises(NotFound) as exc_info:
            cancel_booking(session, 9999, actor(admin), NOW)

        assert exc_info.value.reason == RejectionReason.BOOKING_NOT_FOUND


class TestUpdateBooking:
    def test_client_reschedules(self, book, session, client_user, reminders):
        booking = book(at(TUESDAY, 10))

        moved = update_booking(
            session, booking.id, actor(client_user), NOW, starts_at=at(TUESDAY, 14), notes="later", reminders=reminders
        )

        assert moved.starts_at == at(TUESDAY, 14)
        assert moved.notes == "later"
        assert reminders.get(booking.id).starts_at == at(TUESDAY, 14)

    def test_reschedule_may_overlap_its_own_old_slot(self, book, session, client_user):
        booking = book(at(TUESDAY, 10))

        moved = update_booking(session, booking.id, actor(client_user), NOW, starts_at=at(TUESDAY, 10, 30))

        assert moved.starts_at == at(TUESDAY, 10, 30)

    def test_reschedule_into_taken_slot(self, book, session, client_user, other_client):
        booking = book(at(TUESDAY, 10))
        book(at(TUESDAY, 14), client_id=other_client.id)

        with pytest.raises(Conflict) as exc_info:
            update_booking(session, booking.id, actor(client_user), NOW, starts_at=at(TUESDAY, 14, 30))

        assert exc_info.value.reason == RejectionReason.SLOT_TAKEN
        session.refresh(booking)
        assert booking.starts_at == at(TUESDAY, 10)

    def test_reschedule_to_same_start_as_other_booking(self, book, session, client_user, other_client):
        booking = book(at(TUESDAY, 10))
        book(at(TUESDAY, 14), client_id=other_client.id)

        with pytest.raises(Conflict):
            update_booking(session, booking.id, actor(client_user), NOW, starts_at=at(TUESDAY, 14))

    def test_reschedule_outside_working_hours(self, book, session, client_user):
        booking = book(at(TUESDAY, 10))

        with pytest.raises(OutOfWindow) as exc_info:
            update_booking(session, booking.id, actor(client_user), NOW, starts_at=at(SUNDAY, 10))

        assert exc_info.value.reason == RejectionReason.OUTSIDE_WORKING_HOURS

    def test_client_cannot_modify_within_lead_time(self, book, session, client_user):
        booking = book(at(TUESDAY, 10))

        with pytest.raises(Forbidden) as exc_info:
            update_booking(session, booking.id, actor(client_user), at(TUESDAY, 8, 30), notes="running late")

        assert exc_info.value.reason == RejectionReason.LEAD_TIME_VIOLATION

    def test_barber_edits_notes_but_not_time(self, book, session, barber_user):
        booking = book(at(TUESDAY, 10))

        updated = update_booking(session, booking.id, actor(barber_user), at(TUESDAY, 9, 50), notes="walk-in friend")
        assert updated.notes == "walk-in friend"

        with pytest.raises(Forbidden) as exc_info:
            update_booking(session, booking.id, actor(barber_user), NOW, starts_at=at(TUESDAY, 15))
        assert exc_info.value.reason == RejectionReason.NOT_ALLOWED

    def test_admin_reschedules(self, book, session, admin):
        booking = book(at(TUESDAY, 10))

        moved = update_booking(session, booking.id, actor(admin), NOW, starts_at=at(TUESDAY, 16))

        assert moved.starts_at == at(TUESDAY, 16)

    def test_cancelled_booking_cannot_be_modified(self, book, session, client_user):
        booking = book(at(TUESDAY, 10))
        cancel_booking(session, booking.id, actor(client_user), NOW)

        with pytest.raises(Conflict) as exc_info:
            update_booking(session, booking.id, actor(client_user), NOW, notes="never mind")

        assert exc_info.value.reason == RejectionReason.INVALID_TRANSITION

    def test_stale_notes_edit_on_cancelled_booking(self, book, engine, session, client_user, barber_user):
        booking = book(at(TUESDAY, 10))

        with Session(engine) as barber_session:
            barber_session.get(Booking, booking.id)
            cancel_booking(session, booking.id, actor(client_user), NOW)

            with pytest.raises(Conflict) as exc_info:
                update_booking(barber_session, booking.id, actor(barber_user), NOW, notes="see you soon")

        assert exc_info.value.reason == RejectionReason.INVALID_TRANSITION
        session.refresh(booking)
        assert booking.notes is None

    def test_stale_reschedule_of_cancelled_booking(self, book, engine, session, client_user, admin):
        booking = book(at(TUESDAY, 10))

        with Session(engine) as client_session:
            client_session.get(Booking, booking.id)
            cancel_booking(session, booking.id, actor(admin), NOW)

            with pytest.raises(Conflict) as exc_info:
                update_booking(client_session, booking.id, actor(client_user), NOW, starts_at=at(TUESDAY, 15))

        assert exc_info.value.reason == RejectionReason.INVALID_TRANSITION
        session.refresh(booking)
        assert booking.starts_at == at(TUESDAY, 10)
        assert booking.status == "cancelled"
