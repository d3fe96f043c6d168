"""
Shared fixtures for CommWatch unit tests.

DATABASE_URL is pointed at SQLite before any service module is imported, so
database.py builds its engine without a running postgres. Tests that need
tables get their own in-memory database through the `db` fixture.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime, timedelta, timezone  # noqa: E402
from itertools import count  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from commwatch.services.shared.database import Base  # noqa: E402
from commwatch.services.shared import models  # noqa: E402,F401

# Wednesday 2026-03-18 12:00 UTC. The recent window starts Wednesday 2026-03-11 12:00.
NOW = datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)


def make_db():
    # StaticPool keeps one connection so TestClient worker threads see the same in-memory DB
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False)
    return Session()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db():
    session = make_db()
    yield session
    session.close()


@pytest.fixture
def make_event():
    """Factory for EventRecord snapshots with sequential ids."""
    from commwatch.services.behavioural.event_window import EventRecord

    ids = count(1)

    def _make(
        sender="a@x.com",
        at=None,
        sentiment=None,
        subject="Status update",
        thread_id=None,
        body=None,
        id=None,
    ):
        return EventRecord(
            id=id or f"ev-{next(ids)}",
            sender=sender,
            received_at=at or NOW - timedelta(hours=1),
            subject=subject,
            sentiment=sentiment,
            body=body,
            thread_id=thread_id,
        )

    return _make


@pytest.fixture
def make_window():
    """Factory for EventWindow snapshots anchored at NOW with default 30/7 day windows."""
    from commwatch.services.behavioural.event_window import EventWindow

    def _make(events=(), trust=(), now=NOW, window_days=30, recent_days=7):
        ordered = sorted(events, key=lambda e: e.received_at, reverse=True)
        return EventWindow(
            tenant_id="test-tenant",
            events=tuple(ordered),
            trust_records=tuple(trust),
            window_start=now - timedelta(days=window_days),
            recent_window_start=now - timedelta(days=recent_days),
            now=now,
        )

    return _make


@pytest.fixture
def add_events(db):
    """Insert CommunicationEvent rows: add_events([(sender, received_at), ...], tenant_id=...)."""
    from commwatch.services.shared.models import CommunicationEvent

    ids = count(1)

    def _add(specs, tenant_id="test-tenant", **extra):
        rows = []
        for sender, received_at in specs:
            row = CommunicationEvent(
                id=f"{tenant_id}-{next(ids)}",
                tenant_id=tenant_id,
                sender=sender,
                received_at=received_at,
                **extra,
            )
            db.add(row)
            rows.append(row)
        db.commit()
        return rows

    return _add
