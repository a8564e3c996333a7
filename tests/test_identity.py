"""Tests for member/event identity resolution within one run."""

import pytest
from carre_vert import constants
from carre_vert.errors import ResolutionConflict, StoreWriteError
from carre_vert.identity import IdentityResolver
from carre_vert.models import Event, Member


def make_resolver(store):
    return IdentityResolver(store, store.list_events(), store.list_members())


@pytest.mark.db
class TestMemberResolution:
    def test_matches_existing_member_case_insensitively(self, store, member_factory):
        alice = member_factory("alice martin", group="B")
        resolver = make_resolver(store)

        member, created = resolver.resolve_member("  ALICE", "Martin ", "A")

        assert created is False
        assert member.id == alice.id
        assert store.count("members") == 1

    def test_creates_new_member_with_row_group(self, store):
        resolver = make_resolver(store)

        member, created = resolver.resolve_member("Bob", "Durand", "VTT")

        assert created is True
        assert (member.name, member.group, member.participation_count, member.attended_dates) == ("Bob Durand", "VTT", 0, [])
        assert store.get_member(member.id).name == "Bob Durand"

    def test_blank_group_falls_back_to_default(self, store):
        member, _ = make_resolver(store).resolve_member("Bob", "Durand", "")

        assert member.group == constants.DEFAULT_MEMBER_GROUP

    def test_same_new_member_is_created_once(self, store):
        resolver = make_resolver(store)

        first, first_created = resolver.resolve_member("Bob", "Durand", "B")
        second, second_created = resolver.resolve_member("bob", "DURAND", "B")

        assert (first_created, second_created) == (True, False)
        assert first.id == second.id
        assert store.count("members") == 1
        assert resolver.created_members == [first]

    def test_duplicate_names_in_snapshot_are_a_conflict(self, store, member_factory):
        member_factory("Alice Martin")
        member_factory("ALICE MARTIN")
        resolver = make_resolver(store)

        with pytest.raises(ResolutionConflict):
            resolver.resolve_member("Alice", "Martin", "A")
        assert store.count("members") == 2


@pytest.mark.db
class TestEventResolution:
    def test_matches_existing_event_by_date(self, store, event_factory):
        event = event_factory("2026-01-03", location="Wavre")

        found, created = make_resolver(store).resolve_event("2026-01-03")

        assert created is False
        assert found.id == event.id
        assert found.location == "Wavre"

    def test_creates_imported_event_once(self, store):
        resolver = make_resolver(store)

        first, first_created = resolver.resolve_event("2026-01-10")
        second, second_created = resolver.resolve_event("2026-01-10")

        assert (first_created, second_created) == (True, False)
        assert first.id == second.id
        assert store.count("events") == 1
        assert first.location == constants.DEFAULT_EVENT_LOCATION
        assert first.departure == constants.DEFAULT_EVENT_DEPARTURE
        assert first.remarks == constants.IMPORT_MARKER

    def test_failed_creation_is_not_retried(self):
        calls = []

        class FailingStore:
            def create_event(self, event):
                calls.append(event.iso_date)
                raise StoreWriteError("disk full")

        resolver = IdentityResolver(FailingStore(), [], [])

        with pytest.raises(StoreWriteError):
            resolver.resolve_event("2026-01-10")
        with pytest.raises(StoreWriteError):
            resolver.resolve_event("2026-01-10")
        assert calls == ["2026-01-10"]

    def test_snapshot_is_not_requeried(self, store):
        resolver = make_resolver(store)
        store.create_event(Event(iso_date="2026-01-17"))

        # the resolver only knows the snapshot it was built from
        assert resolver.find_event("2026-01-17") is None

    def test_before_write_hook_runs_for_each_creation(self, store):
        writes = []
        resolver = IdentityResolver(store, [], [], before_write=lambda: writes.append(1))

        resolver.resolve_event("2026-01-10")
        resolver.resolve_event("2026-01-10")
        resolver.resolve_member("Bob", "Durand", "B")

        assert len(writes) == 2


@pytest.mark.unit
def test_members_without_id_can_seed_a_resolver():
    resolver = IdentityResolver(None, [Event(iso_date="2026-01-03")], [Member(name="Alice Martin")])

    assert resolver.find_member("Alice", "Martin").name == "Alice Martin"
    assert resolver.find_event("2026-01-03").iso_date == "2026-01-03"
