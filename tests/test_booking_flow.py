"""End-to-end run through the booking lifecycle over HTTP."""
from __future__ import annotations

from conftest import SESSION_DAY, book


def test_open_claim_confirm_cancel(client, people):
    coach = people["coach"]
    member = people["member"]

    created = client.post(
        f"/coaches/{coach}/availability",
        json={"date": SESSION_DAY.isoformat(), "start_time": "09:00", "end_time": "11:00", "duration_minutes": 60},
    ).get_json()
    assert created["count"] == 2
    first_slot = created["slots"][0]

    appointment = book(client, people, first_slot["id"]).get_json()["appointment"]
    assert appointment["status"] == "pending"

    calendar = client.get(f"/coaches/{coach}/calendar?date={SESSION_DAY.isoformat()}").get_json()
    assert [slot["starts_at"] for slot in calendar["slots"]] == ["2030-01-07T10:00:00"]
    assert [appt["id"] for appt in calendar["appointments"]] == [appointment["id"]]

    pending = client.get(f"/coaches/{coach}/appointments?status=pending").get_json()
    assert [appt["id"] for appt in pending["appointments"]] == [appointment["id"]]

    confirmed = client.post(f"/coaches/{coach}/appointments/{appointment['id']}/confirm")
    assert confirmed.status_code == 200
    assert client.get(f"/members/{member}/sessions").get_json()["sessions"]["used_sessions"] == 1

    cancelled = client.post(
        f"/coaches/{coach}/appointments/{appointment['id']}/cancel",
        json={"reason": "휴관"},
    ).get_json()
    assert cancelled["appointment"]["status"] == "cancelled_by_trainer"
    assert cancelled["appointment"]["cancellation_reason"] == "휴관"
    assert cancelled["slot"]["starts_at"] == "2030-01-07T09:00:00"
    assert cancelled["slot"]["ends_at"] == "2030-01-07T10:00:00"
    assert client.get(f"/members/{member}/sessions").get_json()["sessions"]["used_sessions"] == 0

    slots = client.get(f"/coaches/{coach}/availability?date={SESSION_DAY.isoformat()}").get_json()["slots"]
    assert [slot["starts_at"] for slot in slots] == ["2030-01-07T09:00:00", "2030-01-07T10:00:00"]

    history = client.get(f"/members/{member}/appointments").get_json()["appointments"]
    assert [appt["status"] for appt in history] == ["cancelled_by_trainer"]

    member_inbox = client.get(f"/users/{member}/notifications").get_json()
    assert {n["notification_type"] for n in member_inbox["notifications"]} == {
        "appointment_confirmed",
        "appointment_cancelled",
    }


def test_invalid_status_filter_400(client, people):
    response = client.get(f"/coaches/{people['coach']}/appointments?status=done")

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_status"


def test_get_coach_appointment(client, people, open_day):
    appointment_id = book(client, people, open_day[0]).get_json()["appointment"]["id"]

    own = client.get(f"/coaches/{people['coach']}/appointments/{appointment_id}")
    other = client.get(f"/coaches/{people['other_coach']}/appointments/{appointment_id}")

    assert own.status_code == 200
    assert own.get_json()["appointment"]["member_name"] == "이회원"
    assert other.status_code == 404


def test_calendar_requires_date(client, people):
    assert client.get(f"/coaches/{people['coach']}/calendar").status_code == 400
    assert client.get(f"/coaches/{people['coach']}/calendar?date=07-01-2030").status_code == 400
