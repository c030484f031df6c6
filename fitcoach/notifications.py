"""In-app inbox notifications for booking lifecycle changes.

Notifications are staged on the caller's session so they commit (or roll
back) together with the state change that produced them.
"""
from __future__ import annotations

from datetime import datetime, timezone

from .extensions import db
from .models import Appointment, Notification, utc_now

# (threshold in seconds, label suffix), largest first
_TIME_UNITS = (
    (31536000, "년 전"),
    (2592000, "달 전"),
    (86400, "일 전"),
    (3600, "시간 전"),
    (60, "분 전"),
)


def time_since(created_at: datetime, now: datetime | None = None) -> str:
    """Return a coarse relative label such as ``"3시간 전"``."""
    now = now or utc_now()
    # SQLite hands back naive datetimes; they are stored as UTC.
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    seconds = int((now - created_at).total_seconds())
    for unit, label in _TIME_UNITS:
        interval = seconds / unit
        if interval > 1:
            return f"{int(interval)}{label}"
    return "방금 전"


def _when(appointment: Appointment) -> str:
    return appointment.starts_at.strftime("%Y-%m-%d %H:%M")


def enqueue(
    user_id: int,
    title: str,
    message: str,
    notification_type: str,
    appointment_id: int | None = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        appointment_id=appointment_id,
        title=title,
        message=message,
        notification_type=notification_type,
    )
    db.session.add(notification)
    return notification


def booking_requested(appointment: Appointment) -> Notification:
    return enqueue(
        appointment.coach_id,
        "New Booking Request",
        f"{appointment.member_name}님이 {_when(appointment)} 수업을 예약했습니다.",
        "appointment_requested",
        appointment.appointment_id,
    )


def booking_confirmed(appointment: Appointment) -> Notification:
    return enqueue(
        appointment.member_id,
        "Appointment Confirmed",
        f"트레이너가 {_when(appointment)} 예약을 확정했습니다.",
        "appointment_confirmed",
        appointment.appointment_id,
    )


def booking_rejected(appointment: Appointment, reason: str | None = None) -> Notification:
    message = f"트레이너가 {_when(appointment)} 예약 요청을 거절했습니다."
    if reason:
        message += f" 사유: {reason}"
    return enqueue(
        appointment.member_id,
        "Appointment Rejected",
        message,
        "appointment_rejected",
        appointment.appointment_id,
    )


def booking_cancelled(appointment: Appointment, by: str, reason: str | None = None) -> Notification:
    """Notify the counterpart of whoever cancelled (``by`` is member or trainer)."""
    if by == "member":
        recipient = appointment.coach_id
        message = f"{appointment.member_name}님이 {_when(appointment)} 예약을 취소했습니다."
    else:
        recipient = appointment.member_id
        message = f"트레이너가 {_when(appointment)} 예약을 취소했습니다."
    if reason:
        message += f" 사유: {reason}"
    return enqueue(
        recipient,
        "Appointment Cancelled",
        message,
        "appointment_cancelled",
        appointment.appointment_id,
    )


# --- Inbox ----------------------------------------------------------------


def _inbox_query(user_id: int, notification_type: str | None = None):
    query = Notification.query.filter_by(user_id=user_id)
    if notification_type:
        query = query.filter_by(notification_type=notification_type)
    return query


def inbox(
    user_id: int,
    *,
    unread_only: bool = False,
    notification_type: str | None = None,
    page: int = 1,
    per_page: int = 10,
) -> dict[str, object]:
    """One page of a user's notifications, newest first.

    ``unread_count`` always covers the whole inbox so the bell badge does not
    change with the page or filters being viewed.
    """
    query = _inbox_query(user_id, notification_type)
    if unread_only:
        query = query.filter_by(is_read=False)

    paginated = query.order_by(
        Notification.created_at.desc(), Notification.notification_id.desc()
    ).paginate(page=page, per_page=per_page, error_out=False)
    now = utc_now()

    return {
        "notifications": [n.to_dict(now) for n in paginated.items],
        "unread_count": _inbox_query(user_id).filter_by(is_read=False).count(),
        "page": page,
        "per_page": per_page,
        "total": paginated.total,
        "pages": paginated.pages,
    }


def mark_read(notification_id: int) -> Notification | None:
    notification = db.session.get(Notification, notification_id)
    if notification is None:
        return None
    notification.is_read = True
    db.session.commit()
    return notification


def mark_all_read(user_id: int, notification_type: str | None = None) -> int:
    updated = (
        _inbox_query(user_id, notification_type)
        .filter_by(is_read=False)
        .update({"is_read": True}, synchronize_session=False)
    )
    db.session.commit()
    return updated
