"""Test fixtures and configuration for the carre_vert test suite.

This module implements:
- Function-scoped in-memory record store (store)
- A reconciliation engine without write delay and with a fixed clock (engine)
- Record factories (member_factory, event_factory)
- Spreadsheet builders re-exported from tests/fixtures
"""

import pytest
from carre_vert.db.store import RecordStore
from carre_vert.models import AttendanceMark, Event, Member
from carre_vert.reconciliation import ReconciliationEngine
from tests.fixtures.conftest import (
    attendance_csv_builder,
    attendance_csv_file,
)

FIXED_NOW = "2026-02-01T10:00:00+00:00"


def pytest_sessionfinish(session, exitstatus):
    from carre_vert.logging_config import cleanup_test_logs
    cleanup_test_logs()


@pytest.fixture
def store():
    """Fresh in-memory store with the schema applied."""
    record_store = RecordStore(":memory:")
    yield record_store
    record_store.close()


@pytest.fixture
def engine(store):
    return ReconciliationEngine(store, write_delay=0, clock=lambda: FIXED_NOW)


@pytest.fixture
def member_factory(store):
    """Factory: create a stored member.

    Example:
        alice = member_factory("Alice Martin", group="A", dates=["03/01/2026"])
    """
    def _create(name: str, group: str = "A", dates: list[str] | None = None) -> Member:
        return store.create_member(Member(name=name, group=group, attended_dates=list(dates or [])))

    return _create


@pytest.fixture
def event_factory(store):
    """Factory: create a stored event, optionally with attendance.

    Example:
        event = event_factory("2025-07-05", location="Wavre", attendees=[alice])
    """
    def _create(iso_date: str, location: str = "Blanmont", attendees: list[Member] | None = None, **fields) -> Event:
        event = store.create_event(Event(iso_date=iso_date, location=location, **fields))
        if attendees is not None:
            store.set_attendance(event.id, iso_date, {
                member.id: AttendanceMark(member_id=member.id, name=member.name, group=member.group, marked_at=FIXED_NOW)
                for member in attendees
            })
        return event

    return _create


def snapshot_state(store) -> dict:
    """Comparable view of everything a reconciliation run can change."""
    return {
        "members": sorted(
            (m.name, m.group, m.participation_count, tuple(sorted(m.attended_dates)))
            for m in store.list_members()
        ),
        "events": sorted(e.iso_date for e in store.list_events()),
        "attendance": sorted(
            (record.iso_date, tuple(sorted(mark.name for mark in record.members.values())))
            for record in store.list_attendance()
        ),
    }
