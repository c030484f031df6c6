"""Database models for the fitcoach booking backend."""
from __future__ import annotations

from datetime import datetime, timezone

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


APPOINTMENT_STATUSES = (
    "pending",
    "confirmed",
    "cancelled_by_member",
    "cancelled_by_trainer",
)

NOTIFICATION_TYPES = (
    "appointment_requested",
    "appointment_confirmed",
    "appointment_rejected",
    "appointment_cancelled",
)


class User(db.Model):
    """Coaches, members and admins. Members carry their session credit."""

    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint("used_sessions >= 0", name="ck_users_used_sessions_non_negative"),
        db.CheckConstraint("total_sessions >= 0", name="ck_users_total_sessions_non_negative"),
    )

    user_id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)
    role = db.Column(
        db.Enum(
            "trainer",
            "member",
            "admin",
            name="user_role",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="member",
    )
    # Coach a member is assigned to; members can only book with this coach.
    trainer_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=True)
    total_sessions = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    used_sessions = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    trainer = db.relationship("User", remote_side=[user_id])


class AvailabilitySlot(db.Model):
    """An open, bookable interval on a coach's calendar.

    The row existing is the only signal that the interval can be booked;
    claiming the slot deletes it.
    """

    __tablename__ = "availability_slots"
    __table_args__ = (
        db.CheckConstraint("ends_at > starts_at", name="ck_availability_slots_range"),
        db.Index("ix_availability_slots_coach_start", "coach_id", "starts_at"),
    )

    slot_id = db.Column(db.Integer, primary_key=True)
    coach_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    starts_at = db.Column(db.DateTime, nullable=False)
    ends_at = db.Column(db.DateTime, nullable=False)
    # Set when the slot was recreated by a reject/cancel of this appointment.
    restored_from_appointment_id = db.Column(db.Integer, nullable=True, unique=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    coach = db.relationship("User")

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.slot_id,
            "coach_id": self.coach_id,
            "starts_at": self.starts_at.isoformat() if self.starts_at else None,
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
            "restored_from_appointment_id": self.restored_from_appointment_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Appointment(db.Model):
    """A member's booking with a coach."""

    __tablename__ = "appointments"
    __table_args__ = (
        db.CheckConstraint("ends_at > starts_at", name="ck_appointments_range"),
        db.Index("ix_appointments_coach_start", "coach_id", "starts_at"),
        # Ids must never be handed out twice: restored slots are tagged with them.
        {"sqlite_autoincrement": True},
    )

    appointment_id = db.Column(db.Integer, primary_key=True)
    coach_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False)
    member_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False, index=True)
    # Snapshot taken at booking time, not kept in sync with the profile.
    member_name = db.Column(db.String(100), nullable=False)
    member_email = db.Column(db.String(255))
    starts_at = db.Column(db.DateTime, nullable=False)
    ends_at = db.Column(db.DateTime, nullable=False)
    status = db.Column(
        db.Enum(
            *APPOINTMENT_STATUSES,
            name="appointment_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="pending",
    )
    cancellation_reason = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )

    coach = db.relationship("User", foreign_keys=[coach_id])
    member = db.relationship("User", foreign_keys=[member_id])

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.appointment_id,
            "coach_id": self.coach_id,
            "member_id": self.member_id,
            "member_name": self.member_name,
            "member_email": self.member_email,
            "starts_at": self.starts_at.isoformat() if self.starts_at else None,
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
            "status": self.status,
            "cancellation_reason": self.cancellation_reason,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class Notification(db.Model):
    __tablename__ = "notifications"

    notification_id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.user_id"), nullable=False, index=True)
    # Plain reference: rejected and pending-cancelled appointments are deleted.
    appointment_id = db.Column(db.Integer, nullable=True)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    notification_type = db.Column(
        db.Enum(
            *NOTIFICATION_TYPES,
            name="notification_type",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
    )
    is_read = db.Column(db.Boolean, nullable=False, default=False, server_default="0")
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    user = db.relationship("User")

    def to_dict(self, now: datetime | None = None) -> dict[str, object]:
        from .notifications import time_since

        return {
            "id": self.notification_id,
            "user_id": self.user_id,
            "appointment_id": self.appointment_id,
            "title": self.title,
            "message": self.message,
            "notification_type": self.notification_type,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "time_since": time_since(self.created_at, now) if self.created_at else None,
        }
