"""Shared test fixtures."""

import random
from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from critical_selector import CriticalSelector
from models import db, create_animal


class FakeClock:
    """Manually advanced clock returning aware UTC datetimes."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 15, 8, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def selector(clock):
    return CriticalSelector(hold_seconds=60, clock=clock, rng=random.Random(7))


@pytest.fixture
def app(selector):
    """Application backed by a fresh in-memory database."""
    app = create_app(
        {
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': 'sqlite://',
            'SIMULATION_ENABLED': False,
        },
        selector=selector,
    )
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def add_animal(app):
    """Create an animal and return its id."""

    def _add(display_id="101", **fields):
        with app.app_context():
            return create_animal(display_id, **fields).id

    return _add
