#!/usr/bin/env python3
"""
Create the booking tables in the configured database.

Pass --reset to drop the users, slots, appointments and notifications tables
first (local development only, all data is lost).
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fitcoach import create_app
from fitcoach.extensions import db

def init_database(reset=False):
    app = create_app()
    with app.app_context():
        if reset:
            db.drop_all()
            print("🗑️  Dropped existing tables")

        db.create_all()
        tables = ", ".join(sorted(db.metadata.tables))
        print(f"✅ Tables ready on {db.engine.url.render_as_string(hide_password=True)}: {tables}")

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--reset", action="store_true", help="drop all tables before creating them")
    init_database(reset=parser.parse_args().reset)
