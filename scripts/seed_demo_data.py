#!/usr/bin/env python3
"""
Lot workflow - demo data seed script.

Creates one actor per role and a vendor-owned lot so the workflow
endpoints can be exercised by hand, then prints a bearer token per actor.

Usage:
    python scripts/seed_demo_data.py
    python scripts/seed_demo_data.py --reset
"""

import argparse
import sys

sys.path.insert(0, ".")

from lotflow import create_app
from lotflow.models import db
from lotflow.models.lot import Lot
from lotflow.models.user import User
from lotflow.services.identity import Identity, get_identity_resolver
from lotflow.services.lot_lifecycle import create_lot

DEMO_USERS = [
    ("24VEN001", "Vera", "Vendor", "vendor"),
    ("24DEP001", "Dev", "Depot", "depot-staff"),
    ("24TRK001", "Tara", "Track", "track-worker"),
    ("24INS001", "Ian", "Inspector", "inspector"),
    ("24ADM001", "Ada", "Admin", "admin"),
]

DEMO_LOT = {
    "part_name": "Elastic Rail Clip",
    "factory_name": "Northern Fastenings Ltd",
    "lot_number": "ERC-2026-0001",
    "supply_date": "2026-03-01",
    "manufacturing_date": "2026-02-10",
    "warranty_period": "5 years",
}


def main():
    parser = argparse.ArgumentParser(description="Seed lot workflow demo data")
    parser.add_argument("--reset", action="store_true", help="drop and recreate all tables first")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if args.reset:
            db.drop_all()
            db.create_all()

        for user_id, first, last, role in DEMO_USERS:
            if db.session.get(User, user_id) is None:
                db.session.add(User(id=user_id, first_name=first, last_name=last, role=role))
        db.session.commit()

        vendor_id, first, last, _ = DEMO_USERS[0]
        lot = Lot.query.filter_by(lot_number=DEMO_LOT["lot_number"]).first()
        if lot is None:
            lot = create_lot(Identity(vendor_id, f"{first} {last}", "vendor"), DEMO_LOT)
        print(f"Lot {lot.id} ({lot.lot_number}) status={lot.status}")

        resolver = get_identity_resolver()
        for user_id, first, last, role in DEMO_USERS:
            token = resolver.issue(user_id, f"{first} {last}", role)
            print(f"{role:<13} {user_id}  Bearer {token}")


if __name__ == "__main__":
    main()
