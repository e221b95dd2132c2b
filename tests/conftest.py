"""
Shared pytest fixtures for the lot workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - actors: seeded users V1/V2 (vendor), D1 (depot-staff), T1 (track-worker),
      I1 (inspector), A1 (admin) as resolved identities
    - lot: LOT001, pending, owned by V1
    - auth_headers: factory returning a Bearer header for an actor key
"""

from datetime import datetime, timezone

import pytest

from lotflow import create_app
from lotflow.models import db as _db
from lotflow.models.lot import Lot
from lotflow.models.user import User
from lotflow.services.identity import Identity, get_identity_resolver

ACTORS = {
    "V1": ("Vera", "Vendor", "vendor"),
    "V2": ("Victor", "Supplier", "vendor"),
    "D1": ("Dana", "Depot", "depot-staff"),
    "T1": ("Tom", "Track", "track-worker"),
    "I1": ("Iris", "Inspector", "inspector"),
    "A1": ("Alan", "Admin", "admin"),
}


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Domain fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def actors():
    """Seed one user per actor key and return their identities."""
    identities = {}
    for key, (first, last, role) in ACTORS.items():
        _db.session.add(User(id=key, first_name=first, last_name=last, role=role))
        identities[key] = Identity(actor_id=key, display_name=f"{first} {last}", role=role)
    _db.session.commit()
    return identities


@pytest.fixture()
def lot(actors):
    """LOT001: pending, owned by vendor V1, empty audit trail."""
    return _make_lot("LOT001", "ERC-0001", vendor_id="V1")


def _make_lot(lot_id, lot_number, vendor_id="V1"):
    item = Lot(
        id=lot_id,
        part_name="Elastic Rail Clip",
        factory_name="Northern Fastenings",
        lot_number=lot_number,
        supply_date=datetime(2025, 12, 1, tzinfo=timezone.utc),
        manufacturing_date=datetime(2025, 11, 15, tzinfo=timezone.utc),
        warranty_period="5 years",
        status="pending",
        vendor_id=vendor_id,
        audit_count=0,
    )
    _db.session.add(item)
    _db.session.commit()
    return item


@pytest.fixture()
def make_lot(actors):
    """Factory for additional lots."""
    return _make_lot


@pytest.fixture()
def auth_headers(actors):
    """Return a function mapping an actor key to an Authorization header."""

    def _headers(key):
        first, last, role = ACTORS[key]
        token = get_identity_resolver().issue(key, f"{first} {last}", role)
        return {"Authorization": f"Bearer {token}"}

    return _headers
