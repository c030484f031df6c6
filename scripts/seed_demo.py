#!/usr/bin/env python3
"""
Seed script to create a demo coach, two members and a day of open slots.
Run this after init_db.py to get something bookable in local development.
"""

import sys
from datetime import date, timedelta
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fitcoach import create_app, db
from fitcoach.booking import open_slots
from fitcoach.models import User
from fitcoach.slots import SlotPlan, parse_hhmm

def seed_demo():
    """Create demo users and tomorrow's availability."""
    app = create_app()

    with app.app_context():
        print("🔄 Seeding demo data...")

        coach = User.query.filter_by(email="coach@example.com").first()
        if coach:
            print("⏭️  Demo coach already exists, skipping")
            return

        coach = User(name="김코치", email="coach@example.com", role="trainer")
        db.session.add(coach)
        db.session.flush()

        members = [
            User(name="이회원", email="member1@example.com", role="member",
                 trainer_id=coach.user_id, total_sessions=10),
            User(name="박회원", email="member2@example.com", role="member",
                 trainer_id=coach.user_id, total_sessions=5),
        ]
        db.session.add_all(members)
        db.session.commit()

        plan = SlotPlan(date.today() + timedelta(days=1), parse_hhmm("09:00"), parse_hhmm("18:00"), 60)
        created = open_slots(coach.user_id, plan)

        print(f"✅ Created coach {coach.user_id}, {len(members)} members and {len(created)} slots")

if __name__ == "__main__":
    seed_demo()
