"""
Identity resolution for a reconciliation run.

Both maps are built once from the run's snapshot and updated in memory right
after a creation, so two rows naming the same new member (or the same new
date) resolve to the same record.
"""

from carre_vert import constants
from carre_vert.errors import ResolutionConflict, StoreWriteError
from carre_vert.logging_config import get_logger
from carre_vert.models import Event, Member, member_key

logger = get_logger("identity", "import", console_output=False)


class IdentityResolver:
    def __init__(
        self,
        store,
        events: list[Event],
        members: list[Member],
        default_group: str = constants.DEFAULT_MEMBER_GROUP,
        before_write=None,
    ):
        self.store = store
        self.before_write = before_write or (lambda: None)
        self.default_group = default_group
        self.events_by_date: dict[str, Event] = {}
        self.members_by_key: dict[str, Member] = {}
        self.ambiguous_keys: set[str] = set()
        self.ambiguous_dates: set[str] = set()
        self.failed_dates: dict[str, str] = {}
        self.created_events: list[Event] = []
        self.created_members: list[Member] = []

        # lowest id wins so lookups stay deterministic on duplicates
        for event in sorted(events, key=lambda e: e.id or 0):
            if event.iso_date in self.events_by_date:
                self.ambiguous_dates.add(event.iso_date)
                logger.warning(f"Several events on {event.iso_date}; keeping id {self.events_by_date[event.iso_date].id}")
                continue
            self.events_by_date[event.iso_date] = event

        for member in sorted(members, key=lambda m: m.id or 0):
            if member.key in self.members_by_key:
                self.ambiguous_keys.add(member.key)
                logger.warning(f"Several members named '{member.name}'; rows with this name will be rejected")
                continue
            self.members_by_key[member.key] = member

    def find_member(self, first_name: str, last_name: str) -> Member | None:
        key = member_key(f"{first_name} {last_name}")
        if key in self.ambiguous_keys:
            raise ResolutionConflict(f"'{first_name} {last_name}' matches more than one member")
        return self.members_by_key.get(key)

    def new_member(self, first_name: str, last_name: str, group: str) -> Member:
        """Data for a member seen for the first time (not yet stored)."""
        return Member(
            name=f"{first_name} {last_name}".strip(),
            group=group or self.default_group,
            attended_dates=[],
            participation_count=0,
        )

    def resolve_member(self, first_name: str, last_name: str, group: str) -> tuple[Member, bool]:
        """
        Return (member, created). Creates and stores the member when absent.

        Raises:
            ResolutionConflict: the name is ambiguous in the snapshot
            StoreWriteError: creating the member failed
        """
        existing = self.find_member(first_name, last_name)
        if existing:
            return existing, False

        self.before_write()
        member = self.store.create_member(self.new_member(first_name, last_name, group))
        self.members_by_key[member.key] = member
        self.created_members.append(member)
        logger.info(f"Created new member: {member.name} (group {member.group})")
        return member, True

    def find_event(self, iso_date: str) -> Event | None:
        if iso_date in self.ambiguous_dates:
            raise ResolutionConflict(f"{iso_date} matches more than one event")
        return self.events_by_date.get(iso_date)

    def resolve_event(self, iso_date: str) -> tuple[Event, bool]:
        """
        Return (event, created). Creates and stores an imported event when absent.
        A date whose creation already failed in this run fails again without a retry.
        """
        existing = self.find_event(iso_date)
        if existing:
            return existing, False
        if iso_date in self.failed_dates:
            raise StoreWriteError(self.failed_dates[iso_date])

        self.before_write()
        try:
            event = self.store.create_event(Event.imported(iso_date))
        except StoreWriteError as e:
            self.failed_dates[iso_date] = f"Failed to create event for {iso_date}: {e}"
            raise StoreWriteError(self.failed_dates[iso_date]) from e
        self.events_by_date[iso_date] = event
        self.created_events.append(event)
        logger.info(f"Created new event for {iso_date}")
        return event, True
