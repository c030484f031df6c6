"""Booking lifecycle: slot claims, coach decisions and cancellations.

Every transition runs in one database transaction. State changes are made
with conditional DELETE/UPDATE statements whose row counts are checked, so a
transition that lost a race or is replayed (double click, retried request)
is rejected instead of being applied twice. Notifications are written in
the same transaction as the change they describe.

    pending --confirm--> confirmed --cancel--> cancelled_by_member
       |                                  \\--> cancelled_by_trainer
       +--reject / cancel--> (deleted, slot restored)
"""
from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import NamedTuple

from flask import current_app
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError

from . import notifications
from .extensions import db
from .models import Appointment, AvailabilitySlot, User, utc_now
from .slots import SlotPlan

# Legal status moves; "deleted" means the row is removed and the slot restored.
TRANSITIONS: dict[str, tuple[str, ...]] = {
    "pending": ("confirmed", "deleted"),
    "confirmed": ("cancelled_by_member", "cancelled_by_trainer"),
    "cancelled_by_member": (),
    "cancelled_by_trainer": (),
}

CANCELLER_ROLES = ("member", "trainer")


class BookingError(Exception):
    """Base class for lifecycle failures that map onto an HTTP response."""

    code = "booking_error"
    status = 400
    default_message = "Booking operation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self) -> dict[str, object]:
        return {"error": self.code, "message": self.message}


class NotFound(BookingError):
    code = "not_found"
    status = 404
    default_message = "Resource not found"


class SlotGoneError(BookingError):
    """The slot was claimed (or removed) before this request committed."""

    code = "slot_gone"
    status = 409
    default_message = "Someone else already booked this time."


class NotAllowed(BookingError):
    code = "not_allowed"
    status = 403
    default_message = "Not allowed"


class NoSlotsGenerated(BookingError):
    code = "no_slots"
    status = 400
    default_message = "The window does not fit a single slot; check the times and duration"


class PreconditionFailed(BookingError):
    """The appointment is no longer in the status the transition expects."""

    code = "precondition_failed"
    status = 409

    def __init__(self, expected: tuple[str, ...], current: str | None, message: str | None = None) -> None:
        self.expected = expected
        self.current = current
        super().__init__(
            message
            or f"Appointment status is '{current}', expected one of: {', '.join(expected)}"
        )

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data["current_status"] = self.current
        return data


class NoSessionsRemaining(BookingError):
    code = "no_sessions_remaining"
    status = 409
    default_message = "Member has no remaining sessions"


class Outcome(NamedTuple):
    """Serialized result of a transition."""

    appointment: dict[str, object]
    slot: dict[str, object] | None = None
    deleted: bool = False


@contextmanager
def _transaction() -> Iterator[None]:
    try:
        yield
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def _get_coach(coach_id: int) -> User:
    coach = db.session.get(User, coach_id)
    if coach is None or coach.role != "trainer":
        raise NotFound("Coach not found")
    return coach


def _get_member(member_id: int) -> User:
    member = db.session.get(User, member_id)
    if member is None or member.role != "member":
        raise NotFound("Member not found")
    return member


def _get_appointment(appointment_id: int, coach_id: int | None = None) -> Appointment:
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None or (coach_id is not None and appointment.coach_id != coach_id):
        raise NotFound("Appointment not found")
    return appointment


def _current_status(appointment_id: int) -> str | None:
    return db.session.execute(
        select(Appointment.status).where(Appointment.appointment_id == appointment_id)
    ).scalar_one_or_none()


def _require_transition(appointment: Appointment, target: str) -> None:
    """Raise unless ``TRANSITIONS`` allows moving the appointment to ``target``."""
    if target not in TRANSITIONS.get(appointment.status, ()):
        sources = tuple(status for status, targets in TRANSITIONS.items() if target in targets)
        raise PreconditionFailed(sources, appointment.status)


def _set_status(appointment: Appointment, expected: str, **values: object) -> None:
    """Compare-and-set the appointment row from ``expected`` to ``values``."""
    result = db.session.execute(
        update(Appointment)
        .where(
            Appointment.appointment_id == appointment.appointment_id,
            Appointment.status == expected,
        )
        .values(updated_at=utc_now(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise PreconditionFailed((expected,), _current_status(appointment.appointment_id))


def _delete_appointment(appointment: Appointment, expected: str) -> dict[str, object]:
    snapshot = appointment.to_dict()
    result = db.session.execute(
        delete(Appointment)
        .where(
            Appointment.appointment_id == appointment.appointment_id,
            Appointment.status == expected,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise PreconditionFailed((expected,), _current_status(appointment.appointment_id))
    return snapshot


def _restore_slot(appointment: Appointment) -> AvailabilitySlot:
    """Recreate the slot an appointment consumed, tagged with its id."""
    slot = AvailabilitySlot(
        coach_id=appointment.coach_id,
        starts_at=appointment.starts_at,
        ends_at=appointment.ends_at,
        restored_from_appointment_id=appointment.appointment_id,
    )
    # A failed flush expires the appointment, so keep what the error needs.
    status = appointment.status
    db.session.add(slot)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise PreconditionFailed(
            (status,),
            status,
            "A slot was already restored for this appointment",
        ) from exc
    return slot


def _charge_session(member_id: int) -> None:
    result = db.session.execute(
        update(User)
        .where(User.user_id == member_id, User.used_sessions < User.total_sessions)
        .values(used_sessions=User.used_sessions + 1, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NoSessionsRemaining()


def _refund_session(member_id: int) -> None:
    result = db.session.execute(
        update(User)
        .where(User.user_id == member_id, User.used_sessions > 0)
        .values(used_sessions=User.used_sessions - 1, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        current_app.logger.warning(
            "used_sessions for member %s was already zero; refund skipped", member_id
        )


# --- Availability ---------------------------------------------------------


def open_slots(coach_id: int, plan: SlotPlan) -> list[dict[str, object]]:
    """Insert every slot of ``plan`` for the coach in one batch."""
    with _transaction():
        _get_coach(coach_id)
        slots = [
            AvailabilitySlot(coach_id=coach_id, starts_at=starts_at, ends_at=ends_at)
            for starts_at, ends_at in plan
        ]
        if not slots:
            raise NoSlotsGenerated()
        db.session.add_all(slots)
        db.session.flush()
        created = [slot.to_dict() for slot in slots]

    current_app.logger.info("Opened %d slots for coach %s on %s", len(created), coach_id, plan.day)
    return created


def remove_slot(coach_id: int, slot_id: int) -> None:
    with _transaction():
        result = db.session.execute(
            delete(AvailabilitySlot)
            .where(AvailabilitySlot.slot_id == slot_id, AvailabilitySlot.coach_id == coach_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise NotFound("Slot not found")


# --- Transitions ----------------------------------------------------------


def _find_open_slot(coach_id: int, slot_id: int) -> AvailabilitySlot | None:
    return db.session.execute(
        select(AvailabilitySlot).where(
            AvailabilitySlot.slot_id == slot_id,
            AvailabilitySlot.coach_id == coach_id,
        )
    ).scalar_one_or_none()


def claim_slot(coach_id: int, slot_id: int, member_id: int) -> Outcome:
    """Turn an open slot into a pending appointment for ``member_id``.

    Raises :class:`SlotGoneError` when the slot no longer exists, which is
    how a losing concurrent claimant finds out.
    """
    with _transaction():
        member = _get_member(member_id)
        if member.trainer_id != coach_id:
            raise NotAllowed("Member is not assigned to this coach")

        slot = _find_open_slot(coach_id, slot_id)
        if slot is None:
            raise SlotGoneError()
        starts_at, ends_at = slot.starts_at, slot.ends_at

        result = db.session.execute(
            delete(AvailabilitySlot)
            .where(AvailabilitySlot.slot_id == slot_id, AvailabilitySlot.coach_id == coach_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise SlotGoneError()
        db.session.expunge(slot)

        appointment = Appointment(
            coach_id=coach_id,
            member_id=member.user_id,
            member_name=member.name or member.email,
            member_email=member.email,
            starts_at=starts_at,
            ends_at=ends_at,
            status="pending",
        )
        db.session.add(appointment)
        db.session.flush()
        notifications.booking_requested(appointment)

    current_app.logger.info(
        "Member %s claimed slot %s of coach %s as appointment %s",
        member_id,
        slot_id,
        coach_id,
        appointment.appointment_id,
    )
    return Outcome(appointment.to_dict())


def confirm_appointment(coach_id: int, appointment_id: int) -> Outcome:
    """Approve a pending request and charge one session to the member."""
    with _transaction():
        appointment = _get_appointment(appointment_id, coach_id)
        _require_transition(appointment, "confirmed")
        _set_status(appointment, "pending", status="confirmed")
        _charge_session(appointment.member_id)
        notifications.booking_confirmed(appointment)

    current_app.logger.info("Coach %s confirmed appointment %s", coach_id, appointment_id)
    return Outcome(appointment.to_dict())


def reject_appointment(coach_id: int, appointment_id: int, reason: str | None = None) -> Outcome:
    """Decline a pending request: drop it and give the slot back."""
    with _transaction():
        appointment = _get_appointment(appointment_id, coach_id)
        _require_transition(appointment, "deleted")
        snapshot = _delete_appointment(appointment, "pending")
        slot = _restore_slot(appointment)
        notifications.booking_rejected(appointment, reason)
        restored = slot.to_dict()
        db.session.expunge(appointment)

    current_app.logger.info("Coach %s rejected appointment %s", coach_id, appointment_id)
    return Outcome(snapshot, restored, deleted=True)


def _cancel(appointment: Appointment, by: str, reason: str | None) -> Outcome:
    if by not in CANCELLER_ROLES:
        raise ValueError(f"unknown canceller: {by}")

    cancelled = f"cancelled_by_{by}"
    _require_transition(appointment, "deleted" if appointment.status == "pending" else cancelled)

    if appointment.status == "pending":
        snapshot = _delete_appointment(appointment, "pending")
        slot = _restore_slot(appointment)
        notifications.booking_cancelled(appointment, by, reason)
        restored = slot.to_dict()
        db.session.expunge(appointment)
        return Outcome(snapshot, restored, deleted=True)

    _set_status(
        appointment,
        "confirmed",
        status=cancelled,
        cancellation_reason=reason,
    )
    slot = _restore_slot(appointment)
    _refund_session(appointment.member_id)
    notifications.booking_cancelled(appointment, by, reason)
    return Outcome({}, slot.to_dict())


def cancel_by_trainer(coach_id: int, appointment_id: int, reason: str | None = None) -> Outcome:
    with _transaction():
        appointment = _get_appointment(appointment_id, coach_id)
        outcome = _cancel(appointment, "trainer", reason)

    current_app.logger.info("Coach %s cancelled appointment %s", coach_id, appointment_id)
    return _with_appointment(outcome, appointment)


def cancel_by_member(member_id: int, appointment_id: int, reason: str | None = None) -> Outcome:
    with _transaction():
        appointment = _get_appointment(appointment_id)
        if appointment.member_id != member_id:
            raise NotAllowed("Appointment belongs to another member")
        outcome = _cancel(appointment, "member", reason)

    current_app.logger.info("Member %s cancelled appointment %s", member_id, appointment_id)
    return _with_appointment(outcome, appointment)


def _with_appointment(outcome: Outcome, appointment: Appointment) -> Outcome:
    # Status-updated rows are reloaded after commit; deleted ones keep their snapshot.
    if outcome.deleted:
        return outcome
    return outcome._replace(appointment=appointment.to_dict())


# --- Session credit -------------------------------------------------------


def confirmed_count(member_id: int) -> int:
    return db.session.execute(
        select(func.count(Appointment.appointment_id)).where(
            Appointment.member_id == member_id,
            Appointment.status == "confirmed",
        )
    ).scalar_one()


def session_summary(member_id: int) -> dict[str, object]:
    member = _get_member(member_id)
    derived = confirmed_count(member_id)
    return {
        "member_id": member.user_id,
        "total_sessions": member.total_sessions,
        "used_sessions": member.used_sessions,
        "remaining_sessions": max(member.total_sessions - member.used_sessions, 0),
        "confirmed_appointments": derived,
        "in_sync": derived == member.used_sessions,
    }


def reconcile_used_sessions(apply: bool = False) -> list[dict[str, object]]:
    """Compare each member's counter with their confirmed appointments.

    Returns the members whose counter drifted; with ``apply`` the counter is
    overwritten with the derived value.
    """
    drifted = []
    with _transaction():
        members = db.session.execute(select(User).where(User.role == "member")).scalars().all()
        for member in members:
            derived = confirmed_count(member.user_id)
            if derived == member.used_sessions:
                continue
            drifted.append(
                {"member_id": member.user_id, "used_sessions": member.used_sessions, "confirmed": derived}
            )
            if apply:
                member.used_sessions = derived

    if apply and drifted:
        current_app.logger.warning("Reconciled used_sessions for %d members", len(drifted))
    return drifted
