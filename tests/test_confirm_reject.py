"""Tests for the coach approving or rejecting booking requests."""
from __future__ import annotations

import pytest
from conftest import book

from fitcoach import booking
from fitcoach.booking import PreconditionFailed
from fitcoach.extensions import db
from fitcoach.models import Appointment, AvailabilitySlot, Notification, User


@pytest.fixture
def pending(client, people, open_day):
    response = book(client, people, open_day[0])
    return response.get_json()["appointment"]["id"]


def _used_sessions(app, member_id):
    with app.app_context():
        return db.session.get(User, member_id).used_sessions


def test_confirm_appointment_200(client, people, pending, app):
    response = client.post(f"/coaches/{people['coach']}/appointments/{pending}/confirm")
    data = response.get_json()

    assert response.status_code == 200
    assert data["appointment"]["status"] == "confirmed"
    assert _used_sessions(app, people["member"]) == 1

    with app.app_context():
        notification = Notification.query.filter_by(
            user_id=people["member"], notification_type="appointment_confirmed"
        ).one()
        assert notification.appointment_id == pending
        assert "트레이너가 2030-01-07 09:00 예약을 확정했습니다." == notification.message


def test_confirm_twice_charges_once_409(client, people, pending, app):
    first = client.post(f"/coaches/{people['coach']}/appointments/{pending}/confirm")
    second = client.post(f"/coaches/{people['coach']}/appointments/{pending}/confirm")
    data = second.get_json()

    assert first.status_code == 200
    assert second.status_code == 409
    assert data["error"] == "precondition_failed"
    assert data["current_status"] == "confirmed"
    assert _used_sessions(app, people["member"]) == 1


def test_confirm_without_remaining_sessions_409(client, people, pending, app):
    with app.app_context():
        member = db.session.get(User, people["member"])
        member.total_sessions = 0
        db.session.commit()

    response = client.post(f"/coaches/{people['coach']}/appointments/{pending}/confirm")

    assert response.status_code == 409
    assert response.get_json()["error"] == "no_sessions_remaining"

    with app.app_context():
        # the status change was rolled back with the failed charge
        assert db.session.get(Appointment, pending).status == "pending"
        assert db.session.get(User, people["member"]).used_sessions == 0
        assert Notification.query.filter_by(notification_type="appointment_confirmed").count() == 0


def test_confirm_appointment_of_other_coach_404(client, people, pending):
    response = client.post(f"/coaches/{people['other_coach']}/appointments/{pending}/confirm")

    assert response.status_code == 404
    assert response.get_json()["message"] == "Appointment not found"


def test_confirm_unknown_appointment_404(client, people):
    response = client.post(f"/coaches/{people['coach']}/appointments/999/confirm")

    assert response.status_code == 404
    assert response.get_json()["error"] == "not_found"


def test_reject_appointment_restores_slot(client, people, pending, app):
    response = client.post(
        f"/coaches/{people['coach']}/appointments/{pending}/reject",
        json={"reason": "개인 사정"},
    )
    data = response.get_json()

    assert response.status_code == 200
    assert data["appointment"]["id"] == pending
    assert data["slot"]["starts_at"] == "2030-01-07T09:00:00"
    assert data["slot"]["ends_at"] == "2030-01-07T10:00:00"
    assert data["slot"]["restored_from_appointment_id"] == pending

    with app.app_context():
        assert db.session.get(Appointment, pending) is None
        assert AvailabilitySlot.query.count() == 2
        assert db.session.get(User, people["member"]).used_sessions == 0
        notification = Notification.query.filter_by(
            user_id=people["member"], notification_type="appointment_rejected"
        ).one()
        assert notification.message.endswith("사유: 개인 사정")


def test_reject_confirmed_appointment_409(client, people, pending, app):
    client.post(f"/coaches/{people['coach']}/appointments/{pending}/confirm")

    response = client.post(f"/coaches/{people['coach']}/appointments/{pending}/reject")

    assert response.status_code == 409
    assert response.get_json()["current_status"] == "confirmed"
    with app.app_context():
        assert db.session.get(Appointment, pending).status == "confirmed"
        assert AvailabilitySlot.query.count() == 1


def test_reject_twice_404(client, people, pending):
    client.post(f"/coaches/{people['coach']}/appointments/{pending}/reject")

    response = client.post(f"/coaches/{people['coach']}/appointments/{pending}/reject")

    assert response.status_code == 404


def test_confirm_raises_precondition_failed_directly(people, pending, app):
    with app.app_context():
        booking.confirm_appointment(people["coach"], pending)

        with pytest.raises(PreconditionFailed) as excinfo:
            booking.confirm_appointment(people["coach"], pending)

        assert excinfo.value.expected == ("pending",)
        assert excinfo.value.current == "confirmed"


def test_reject_again_after_a_previous_rejection(client, people, open_day, app):
    first = book(client, people, open_day[0]).get_json()["appointment"]["id"]
    assert client.post(f"/coaches/{people['coach']}/appointments/{first}/reject").status_code == 200

    second = book(client, people, open_day[1]).get_json()["appointment"]["id"]
    response = client.post(f"/coaches/{people['coach']}/appointments/{second}/reject")

    assert second != first
    assert response.status_code == 200
    with app.app_context():
        tags = sorted(slot.restored_from_appointment_id for slot in AvailabilitySlot.query.all())
        assert tags == [first, second]


def test_reject_when_slot_already_restored_409(client, people, pending, app):
    with app.app_context():
        appointment = db.session.get(Appointment, pending)
        db.session.add(
            AvailabilitySlot(
                coach_id=appointment.coach_id,
                starts_at=appointment.starts_at,
                ends_at=appointment.ends_at,
                restored_from_appointment_id=pending,
            )
        )
        db.session.commit()

    response = client.post(f"/coaches/{people['coach']}/appointments/{pending}/reject")
    data = response.get_json()

    assert response.status_code == 409
    assert data["error"] == "precondition_failed"
    assert data["message"] == "A slot was already restored for this appointment"
    assert data["current_status"] == "pending"

    with app.app_context():
        assert db.session.get(Appointment, pending).status == "pending"
        assert AvailabilitySlot.query.count() == 2
        assert Notification.query.filter_by(notification_type="appointment_rejected").count() == 0
