"""pytest configuration and shared fixtures."""
from __future__ import annotations

import sys
from datetime import date
from pathlib import Path

import pytest

# Ensure the project root is available on sys.path so tests can import the package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from fitcoach import create_app  # noqa: E402
from fitcoach.config import TestingConfig  # noqa: E402
from fitcoach.extensions import db  # noqa: E402
from fitcoach.models import User  # noqa: E402

SESSION_DAY = date(2030, 1, 7)


@pytest.fixture
def app():
    flask_app = create_app(TestingConfig)
    with flask_app.app_context():
        db.create_all()

    yield flask_app

    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def people(app):
    """A coach, a member assigned to them and a member of another coach."""
    with app.app_context():
        coach = User(name="김코치", email="coach@example.com", role="trainer")
        other_coach = User(name="Other Coach", email="other-coach@example.com", role="trainer")
        db.session.add_all([coach, other_coach])
        db.session.flush()

        member = User(
            name="이회원",
            email="member@example.com",
            role="member",
            trainer_id=coach.user_id,
            total_sessions=10,
        )
        stranger = User(
            name="Stranger",
            email="stranger@example.com",
            role="member",
            trainer_id=other_coach.user_id,
            total_sessions=10,
        )
        db.session.add_all([member, stranger])
        db.session.commit()

        return {
            "coach": coach.user_id,
            "other_coach": other_coach.user_id,
            "member": member.user_id,
            "stranger": stranger.user_id,
        }


@pytest.fixture
def open_day(client, people):
    """Open SESSION_DAY 09:00-11:00 in 60 minute slots and return the slot ids."""
    response = client.post(
        f"/coaches/{people['coach']}/availability",
        json={
            "date": SESSION_DAY.isoformat(),
            "start_time": "09:00",
            "end_time": "11:00",
            "duration_minutes": 60,
        },
    )
    assert response.status_code == 201
    return [slot["id"] for slot in response.get_json()["slots"]]


def book(client, people, slot_id, member_key="member"):
    return client.post(
        f"/coaches/{people['coach']}/availability/{slot_id}/book",
        json={"member_id": people[member_key]},
    )
