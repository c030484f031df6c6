#!/usr/bin/env python3
"""
Compare each member's used_sessions counter with their confirmed appointments.

Dry run by default; pass --apply to overwrite drifted counters.
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from fitcoach import create_app
from fitcoach.booking import reconcile_used_sessions

def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--apply", action="store_true", help="write the derived counts")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        drifted = reconcile_used_sessions(apply=args.apply)

        if not drifted:
            print("✅ All session counters match confirmed appointments")
            return

        for row in drifted:
            print(f"member {row['member_id']}: used_sessions={row['used_sessions']} confirmed={row['confirmed']}")
        action = "Fixed" if args.apply else "Found"
        print(f"{action} {len(drifted)} drifted member(s)")

if __name__ == "__main__":
    main()
