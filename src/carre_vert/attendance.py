"""Operator edits of a single event's attendance (outside the bulk import)."""

import datetime

from carre_vert import constants
from carre_vert.errors import ValidationError
from carre_vert.logging_config import get_logger
from carre_vert.models import AttendanceMark, AttendanceRecord
from carre_vert.utils import now_iso

logger = get_logger("attendance", "attendance", console_output=False)


def _require(value, field_name: str, context: str = ""):
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Missing required field{context}: {field_name}")
    return value


def _as_id(value, field_name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field_name}: {value!r}")


def set_attendance(store, event_id, member_id, name=None, group=None, action=None, iso_date=None, clock=now_iso) -> dict:
    """
    Add or remove one member from an event's attendance.

    The event's whole member set is read, changed for this one member and
    written back as a replacement. Member statistics are left alone; the next
    import rederives them.

    Raises:
        ValidationError: missing/invalid fields, checked before any write
        StoreWriteError: the store rejected the write (e.g. unknown event)
    """
    _require(event_id, "eventId")
    _require(member_id, "memberId")
    _require(action, "action")
    if action not in constants.ATTENDANCE_ACTIONS:
        raise ValidationError(f"Invalid action '{action}'. Use \"add\" or \"remove\".")
    event_id = _as_id(event_id, "eventId")
    member_id = _as_id(member_id, "memberId")

    if action == "add":
        _require(iso_date, "isoDate", " for add")
        _require(name, "name", " for add")
        try:
            datetime.date.fromisoformat(iso_date)
        except ValueError:
            raise ValidationError(f"Invalid isoDate '{iso_date}': expected YYYY-MM-DD")

    record = store.get_attendance(event_id)

    if action == "remove":
        if record is None or member_id not in record.members:
            logger.debug(f"Member {member_id} not marked on event {event_id}; nothing to remove")
            return {"success": True, "members": len(record.members) if record else 0}
        members = {k: v for k, v in record.members.items() if k != member_id}
        written = store.set_attendance(record.event_id, record.iso_date, members)
        logger.info(f"Removed member {member_id} from event {event_id}")
        return {"success": True, "members": len(written.members)}

    members = dict(record.members) if record else {}
    members[member_id] = AttendanceMark(
        member_id=member_id,
        name=name.strip(),
        group=(group or "").strip(),
        marked_at=clock(),
    )
    written = store.set_attendance(event_id, iso_date, members)
    logger.info(f"Marked {name} present on event {event_id} ({iso_date})")
    return {"success": True, "members": len(written.members)}


def get_event_attendance(store, event_id) -> AttendanceRecord | None:
    return store.get_attendance(event_id)


def get_all_attendance(store) -> dict[str, dict]:
    """All attendance records keyed by event id."""
    return {str(record.event_id): record.to_dict() for record in store.list_attendance()}
