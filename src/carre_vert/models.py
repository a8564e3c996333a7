from dataclasses import dataclass, field

from carre_vert import constants


def member_key(name: str) -> str:
    """Case-insensitive lookup key for a member's full name."""
    return (name or "").strip().lower()


@dataclass
class Member:
    """A club member and the outing dates they attended."""

    name: str
    group: str = ""
    attended_dates: list[str] = field(default_factory=list)
    participation_count: int = 0
    id: int | None = None

    def __post_init__(self):
        self.name = str(self.name or "").strip()
        self.group = str(self.group or "").strip()
        if not self.name:
            raise ValueError("Member requires a 'name' field")
        # participation_count always follows attended_dates
        self.set_dates(self.attended_dates)

    @property
    def key(self) -> str:
        return member_key(self.name)

    def set_dates(self, dates):
        """Replace the attended dates, dropping duplicates, and recompute the count."""
        unique = []
        for token in dates:
            if token not in unique:
                unique.append(token)
        self.attended_dates = unique
        self.participation_count = len(unique)

    @staticmethod
    def from_db_row(row, dates=None) -> "Member":
        member = Member(
            id=int(row["id"]),
            name=row["name"],
            group=row["member_group"] or "",
        )
        member.set_dates(dates or [])
        return member

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "group": self.group,
            "participationCount": self.participation_count,
            "attendedDates": list(self.attended_dates),
        }


@dataclass
class Event:
    """A calendar outing. At most one per calendar date."""

    iso_date: str
    location: str = constants.DEFAULT_EVENT_LOCATION
    distances: str = ""
    departure: str = constants.DEFAULT_EVENT_DEPARTURE
    address: str = ""
    remarks: str = ""
    alternative: str = ""
    group: str = constants.DEFAULT_EVENT_GROUP
    id: int | None = None

    @staticmethod
    def from_db_row(row) -> "Event":
        return Event(
            id=int(row["id"]),
            iso_date=row["iso_date"],
            location=row["location"] or "",
            distances=row["distances"] or "",
            departure=row["departure"] or "",
            address=row["address"] or "",
            remarks=row["remarks"] or "",
            alternative=row["alternative"] or "",
            group=row["event_group"] or "",
        )

    @classmethod
    def imported(cls, iso_date: str) -> "Event":
        """Event created by the CSV import for a date that had none."""
        return cls(iso_date=iso_date, remarks=constants.IMPORT_MARKER)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "isoDate": self.iso_date,
            "location": self.location,
            "distances": self.distances,
            "departure": self.departure,
            "address": self.address,
            "remarks": self.remarks,
            "alternative": self.alternative,
            "group": self.group,
        }


@dataclass
class AttendanceMark:
    member_id: int
    name: str
    group: str
    marked_at: str

    def to_dict(self) -> dict:
        return {
            "memberId": self.member_id,
            "name": self.name,
            "group": self.group,
            "markedAt": self.marked_at,
        }


@dataclass
class AttendanceRecord:
    """Who attended one event. The member set is always written as a whole."""

    event_id: int
    iso_date: str
    members: dict[int, AttendanceMark] = field(default_factory=dict)
    updated_at: str | None = None

    def to_dict(self) -> dict:
        return {
            "eventId": self.event_id,
            "isoDate": self.iso_date,
            "members": {str(member_id): mark.to_dict() for member_id, mark in sorted(self.members.items())},
            "updatedAt": self.updated_at,
        }


@dataclass
class ScoreEntry:
    member_id: int
    name: str
    group: str
    credited_count: int
    raw_count: int = 0
    attendance_rate: float = 0.0
    rank: int = 0

    def to_dict(self) -> dict:
        return {
            "memberId": self.member_id,
            "name": self.name,
            "group": self.group,
            "creditedCount": self.credited_count,
            "rawCount": self.raw_count,
            "attendanceRate": self.attendance_rate,
            "rank": self.rank,
        }
