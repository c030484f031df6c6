"""HTTP routes for the fitcoach booking backend."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta

from flask import Blueprint, Flask, current_app, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from . import booking, notifications
from .booking import BookingError
from .extensions import db
from .models import APPOINTMENT_STATUSES, NOTIFICATION_TYPES, Appointment, AvailabilitySlot, User
from .slots import SlotPlan

bp = Blueprint("api", __name__)


def register_routes(app: Flask) -> None:
    app.register_blueprint(bp)


def _parse_day(value: str) -> tuple[datetime, datetime]:
    day = date.fromisoformat(value)
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def _reason(payload: dict[str, object]) -> str | None:
    return (str(payload.get("reason") or "")).strip() or None


@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database."""
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


# ============================================================================
# AVAILABILITY
# ============================================================================


@bp.post("/coaches/<int:coach_id>/availability/preview")
def preview_availability(coach_id: int) -> tuple[dict[str, object], int]:
    """Show the slots a generation request would create, without saving them.
    ---
    tags:
      - Availability
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            date:
              type: string
              format: date
            start_time:
              type: string
              example: "09:00"
            end_time:
              type: string
              example: "18:00"
            duration_minutes:
              type: integer
              example: 60
    responses:
      200:
        description: Slots that would be created
      400:
        description: Invalid payload
    """
    payload = request.get_json(silent=True) or {}
    try:
        plan = SlotPlan.from_payload(payload)
    except ValueError as exc:
        return jsonify({"error": "invalid_payload", "message": str(exc)}), 400

    slots = plan.to_list()
    return jsonify({"coach_id": coach_id, "slots": slots, "count": len(slots)}), 200


@bp.post("/coaches/<int:coach_id>/availability")
def create_availability(coach_id: int) -> tuple[dict[str, object], int]:
    """Generate and save availability slots for one day.
    ---
    tags:
      - Availability
    responses:
      201:
        description: Slots created
      400:
        description: Invalid payload or no slot fits the window
      404:
        description: Coach not found
      500:
        description: Database error
    """
    payload = request.get_json(silent=True) or {}
    try:
        plan = SlotPlan.from_payload(payload)
    except ValueError as exc:
        return jsonify({"error": "invalid_payload", "message": str(exc)}), 400

    try:
        created = booking.open_slots(coach_id, plan)
    except BookingError as exc:
        return jsonify(exc.to_dict()), exc.status
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to create availability", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Availability created", "slots": created, "count": len(created)}), 201


@bp.get("/coaches/<int:coach_id>/availability")
def list_availability(coach_id: int) -> tuple[dict[str, object], int]:
    """List open slots for a coach, optionally limited to a day or a range.
    ---
    tags:
      - Availability
    parameters:
      - name: date
        in: query
        type: string
        description: YYYY-MM-DD
      - name: from
        in: query
        type: string
        description: ISO datetime lower bound (inclusive)
      - name: to
        in: query
        type: string
        description: ISO datetime upper bound (exclusive)
    """
    try:
        query = AvailabilitySlot.query.filter_by(coach_id=coach_id)

        date_str = request.args.get("date")
        from_str = request.args.get("from")
        to_str = request.args.get("to")
        try:
            if date_str:
                day_start, day_end = _parse_day(date_str)
                query = query.filter(
                    AvailabilitySlot.starts_at >= day_start,
                    AvailabilitySlot.starts_at < day_end,
                )
            if from_str:
                query = query.filter(AvailabilitySlot.starts_at >= datetime.fromisoformat(from_str))
            if to_str:
                query = query.filter(AvailabilitySlot.starts_at < datetime.fromisoformat(to_str))
        except ValueError:
            return jsonify({"error": "invalid_date", "message": "Dates must be ISO formatted"}), 400

        slots = query.order_by(AvailabilitySlot.starts_at.asc()).all()
        return jsonify({"slots": [slot.to_dict() for slot in slots]}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch availability", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.delete("/coaches/<int:coach_id>/availability/<int:slot_id>")
def delete_availability(coach_id: int, slot_id: int) -> tuple[dict[str, object], int]:
    """Remove an open slot from the coach's calendar."""
    try:
        booking.remove_slot(coach_id, slot_id)
    except BookingError as exc:
        return jsonify(exc.to_dict()), exc.status
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to delete availability slot", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "Slot deleted"}), 200


@bp.post("/coaches/<int:coach_id>/availability/<int:slot_id>/book")
def book_slot(coach_id: int, slot_id: int) -> tuple[dict[str, object], int]:
    """Claim an open slot as a pending appointment.
    ---
    tags:
      - Appointments
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            member_id:
              type: integer
          required:
            - member_id
    responses:
      201:
        description: Appointment requested
      400:
        description: Invalid payload
      403:
        description: Member is not assigned to this coach
      409:
        description: The slot was booked by someone else first
      500:
        description: Database error
    """
    payload = request.get_json(silent=True) or {}
    member_id = payload.get("member_id")
    if not isinstance(member_id, int) or isinstance(member_id, bool):
        return jsonify({"error": "invalid_payload", "message": "member_id is required"}), 400

    try:
        outcome = booking.claim_slot(coach_id, slot_id, member_id)
    except BookingError as exc:
        return jsonify(exc.to_dict()), exc.status
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to book slot", exc_info=exc)
        return jsonify({"error": "database_error", "message": "Booking failed, please try again"}), 500

    return jsonify({"message": "Appointment requested", "appointment": outcome.appointment}), 201


# ============================================================================
# APPOINTMENTS (COACH)
# ============================================================================


@bp.get("/coaches/<int:coach_id>/appointments")
def list_coach_appointments(coach_id: int) -> tuple[dict[str, object], int]:
    """Get appointments on a coach's calendar.
    ---
    tags:
      - Appointments
    parameters:
      - name: status
        in: query
        type: string
        enum: [pending, confirmed, cancelled_by_member, cancelled_by_trainer]
      - name: member_id
        in: query
        type: integer
      - name: date
        in: query
        type: string
    """
    try:
        query = Appointment.query.filter_by(coach_id=coach_id)

        status = request.args.get("status")
        if status:
            if status not in APPOINTMENT_STATUSES:
                return (
                    jsonify(
                        {
                            "error": "invalid_status",
                            "message": f"Status must be one of: {', '.join(APPOINTMENT_STATUSES)}",
                        }
                    ),
                    400,
                )
            query = query.filter_by(status=status)

        member_id = request.args.get("member_id", type=int)
        if member_id is not None:
            query = query.filter_by(member_id=member_id)

        date_str = request.args.get("date")
        if date_str:
            try:
                day_start, day_end = _parse_day(date_str)
            except ValueError:
                return jsonify({"error": "invalid_date", "message": "Date must be in YYYY-MM-DD format"}), 400
            query = query.filter(Appointment.starts_at >= day_start, Appointment.starts_at < day_end)

        appointments = query.order_by(Appointment.starts_at.asc()).all()
        return jsonify({"appointments": [appt.to_dict() for appt in appointments]}), 200

    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch coach appointments", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.get("/coaches/<int:coach_id>/appointments/<int:appointment_id>")
def get_coach_appointment(coach_id: int, appointment_id: int) -> tuple[dict[str, object], int]:
    try:
        appointment = Appointment.query.filter_by(appointment_id=appointment_id, coach_id=coach_id).first()
        if appointment is None:
            return jsonify({"error": "not_found", "message": "Appointment not found"}), 404
        return jsonify({"appointment": appointment.to_dict()}), 200
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch appointment", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.post("/coaches/<int:coach_id>/appointments/<int:appointment_id>/confirm")
def confirm_appointment(coach_id: int, appointment_id: int) -> tuple[dict[str, object], int]:
    """Approve a pending appointment and charge one session to the member.
    ---
    tags:
      - Appointments
    responses:
      200:
        description: Appointment confirmed
      404:
        description: Appointment not found
      409:
        description: Appointment is not pending, or member has no sessions left
      500:
        description: Database error
    """
    try:
        outcome = booking.confirm_appointment(coach_id, appointment_id)
    except BookingError as exc:
        return jsonify(exc.to_dict()), exc.status
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to confirm appointment", exc_info=exc)
        return jsonify({"error": "database_error", "message": "Confirmation failed, please try again"}), 500

    return jsonify({"message": "Appointment confirmed", "appointment": outcome.appointment}), 200


@bp.post("/coaches/<int:coach_id>/appointments/<int:appointment_id>/reject")
def reject_appointment(coach_id: int, appointment_id: int) -> tuple[dict[str, object], int]:
    """Decline a pending appointment; the slot becomes bookable again."""
    payload = request.get_json(silent=True) or {}
    try:
        outcome = booking.reject_appointment(coach_id, appointment_id, _reason(payload))
    except BookingError as exc:
        return jsonify(exc.to_dict()), exc.status
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to reject appointment", exc_info=exc)
        return jsonify({"error": "database_error", "message": "Rejection failed, please try again"}), 500

    return (
        jsonify({"message": "Appointment rejected", "appointment": outcome.appointment, "slot": outcome.slot}),
        200,
    )


@bp.post("/coaches/<int:coach_id>/appointments/<int:appointment_id>/cancel")
def cancel_appointment_by_coach(coach_id: int, appointment_id: int) -> tuple[dict[str, object], int]:
    """Cancel an appointment from the coach's side.
    ---
    tags:
      - Appointments
    parameters:
      - name: body
        in: body
        schema:
          type: object
          properties:
            reason:
              type: string
    responses:
      200:
        description: Appointment cancelled and slot restored
      404:
        description: Appointment not found
      409:
        description: Appointment was already cancelled
      500:
        description: Database error
    """
    payload = request.get_json(silent=True) or {}
    try:
        outcome = booking.cancel_by_trainer(coach_id, appointment_id, _reason(payload))
    except BookingError as exc:
        return jsonify(exc.to_dict()), exc.status
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to cancel appointment", exc_info=exc)
        return jsonify({"error": "database_error", "message": "Cancellation failed, please try again"}), 500

    return (
        jsonify(
            {
                "message": "Appointment cancelled successfully",
                "appointment": outcome.appointment,
                "slot": outcome.slot,
                "deleted": outcome.deleted,
            }
        ),
        200,
    )


@bp.get("/coaches/<int:coach_id>/calendar")
def coach_calendar(coach_id: int) -> tuple[dict[str, object], int]:
    """Open slots and appointments for one day, as drawn on the calendar grid."""
    date_str = request.args.get("date")
    if not date_str:
        return jsonify({"error": "invalid_payload", "message": "date (YYYY-MM-DD) is required"}), 400
    try:
        day_start, day_end = _parse_day(date_str)
    except ValueError:
        return jsonify({"error": "invalid_date", "message": "Date must be in YYYY-MM-DD format"}), 400

    try:
        slots = (
            AvailabilitySlot.query.filter(
                AvailabilitySlot.coach_id == coach_id,
                AvailabilitySlot.starts_at >= day_start,
                AvailabilitySlot.starts_at < day_end,
            )
            .order_by(AvailabilitySlot.starts_at.asc())
            .all()
        )
        appointments = (
            Appointment.query.filter(
                Appointment.coach_id == coach_id,
                Appointment.starts_at >= day_start,
                Appointment.starts_at < day_end,
            )
            .order_by(Appointment.starts_at.asc())
            .all()
        )
        return (
            jsonify(
                {
                    "date": date_str,
                    "slots": [slot.to_dict() for slot in slots],
                    "appointments": [appt.to_dict() for appt in appointments],
                }
            ),
            200,
        )
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch calendar", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


# ============================================================================
# MEMBERS
# ============================================================================


@bp.get("/members/<int:member_id>/appointments")
def list_member_appointments(member_id: int) -> tuple[dict[str, object], int]:
    try:
        appointments = (
            Appointment.query.filter_by(member_id=member_id)
            .order_by(Appointment.starts_at.desc())
            .all()
        )
        return jsonify({"appointments": [appt.to_dict() for appt in appointments]}), 200
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch member appointments", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


@bp.post("/members/<int:member_id>/appointments/<int:appointment_id>/cancel")
def cancel_appointment_by_member(member_id: int, appointment_id: int) -> tuple[dict[str, object], int]:
    """Cancel one of the member's own appointments."""
    payload = request.get_json(silent=True) or {}
    try:
        outcome = booking.cancel_by_member(member_id, appointment_id, _reason(payload))
    except BookingError as exc:
        return jsonify(exc.to_dict()), exc.status
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to cancel appointment", exc_info=exc)
        return jsonify({"error": "database_error", "message": "Cancellation failed, please try again"}), 500

    return (
        jsonify(
            {
                "message": "Appointment cancelled successfully",
                "appointment": outcome.appointment,
                "slot": outcome.slot,
                "deleted": outcome.deleted,
            }
        ),
        200,
    )


@bp.get("/members/<int:member_id>/sessions")
def get_member_sessions(member_id: int) -> tuple[dict[str, object], int]:
    """Session credit of a member, with the count derived from confirmed appointments."""
    try:
        return jsonify({"sessions": booking.session_summary(member_id)}), 200
    except BookingError as exc:
        return jsonify(exc.to_dict()), exc.status
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch session credit", exc_info=exc)
        return jsonify({"error": "database_error"}), 500


# ============================================================================
# INBOX
# ============================================================================


def _notification_type() -> str | None:
    """Read the optional ``type`` filter; raises ``ValueError`` on unknown types."""
    notification_type = request.args.get("type")
    if notification_type and notification_type not in NOTIFICATION_TYPES:
        raise ValueError(f"type must be one of: {', '.join(NOTIFICATION_TYPES)}")
    return notification_type or None


@bp.get("/users/<int:user_id>/notifications")
def get_user_notifications(user_id: int) -> tuple[dict[str, object], int]:
    """List a user's booking notifications, newest first.
    ---
    tags:
      - Notifications
    parameters:
      - name: unread_only
        in: query
        type: boolean
        default: false
      - name: type
        in: query
        type: string
        enum: [appointment_requested, appointment_confirmed, appointment_rejected, appointment_cancelled]
      - name: page
        in: query
        type: integer
        default: 1
      - name: limit
        in: query
        type: integer
        default: 10
    responses:
      200:
        description: One page of the inbox plus the unread count
      400:
        description: Invalid query parameters
      404:
        description: User not found
    """
    try:
        notification_type = _notification_type()
        page = max(1, int(request.args.get("page", 1)))
        per_page = min(
            current_app.config["NOTIFICATIONS_PAGE_LIMIT"],
            max(1, int(request.args.get("limit", 10))),
        )
    except ValueError as exc:
        current_app.logger.warning("Invalid inbox query for user %s: %s", user_id, exc)
        return jsonify({"error": "invalid_parameters", "message": str(exc)}), 400

    try:
        if db.session.get(User, user_id) is None:
            return jsonify({"error": "user_not_found"}), 404
        data = notifications.inbox(
            user_id,
            unread_only=request.args.get("unread_only", "false").lower() == "true",
            notification_type=notification_type,
            page=page,
            per_page=per_page,
        )
    except SQLAlchemyError as exc:
        current_app.logger.exception("Failed to fetch notifications", exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify(data), 200


@bp.put("/notifications/<int:notification_id>/read")
def mark_notification_as_read(notification_id: int) -> tuple[dict[str, object], int]:
    try:
        notification = notifications.mark_read(notification_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to mark notification %s as read", notification_id, exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    if notification is None:
        return jsonify({"error": "notification_not_found"}), 404
    return jsonify({"message": "notification_marked_as_read", "notification": notification.to_dict()}), 200


@bp.put("/users/<int:user_id>/notifications/read-all")
def mark_all_notifications_as_read(user_id: int) -> tuple[dict[str, object], int]:
    """Mark a user's unread notifications as read, optionally only one ``type``."""
    try:
        notification_type = _notification_type()
    except ValueError as exc:
        return jsonify({"error": "invalid_parameters", "message": str(exc)}), 400

    try:
        if db.session.get(User, user_id) is None:
            return jsonify({"error": "user_not_found"}), 404
        updated_count = notifications.mark_all_read(user_id, notification_type)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Failed to mark notifications of user %s as read", user_id, exc_info=exc)
        return jsonify({"error": "database_error"}), 500

    return jsonify({"message": "all_notifications_marked_as_read", "updated_count": updated_count}), 200
