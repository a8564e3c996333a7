"""
SQLite record store for events, members and per-event attendance.

The store owns its connection. Outside of ``transaction()`` every write is
committed on its own; inside, writes join the surrounding transaction and a
failing write is rolled back to a savepoint so earlier writes survive.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path

from carre_vert import constants
from carre_vert.errors import StoreWriteError
from carre_vert.logging_config import get_logger
from carre_vert.models import AttendanceMark, AttendanceRecord, Event, Member, member_key
from carre_vert.utils import now_iso

SCHEMA_PATH = Path(__file__).parent / constants.SCHEMA_FILENAME

EVENT_COLUMNS = "id, iso_date, location, distances, departure, address, remarks, alternative, event_group"

logger = get_logger("record_store", "db", console_output=False)


class RecordStore:
    def __init__(self, db_path: str = constants.DEFAULT_DB_PATH, init_schema: bool = True, timeout: float = constants.DB_TIMEOUT_SECONDS):
        """
        Open a SQLite connection from a filesystem path (or ':memory:').
        This class owns the connection lifecycle.
        """
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.db_path = db_path
        # autocommit mode; transactions are opened explicitly below
        self.conn = sqlite3.connect(db_path, timeout=timeout, isolation_level=None, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._in_transaction = False
        if init_schema:
            self.init_schema()

    def __enter__(self) -> "RecordStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        self.conn.close()

    def init_schema(self) -> None:
        self.conn.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))

    @contextmanager
    def transaction(self, dry_run: bool = False):
        """
        Group writes into one transaction. A dry run always rolls back.

        Raises:
            StoreWriteError: the transaction could not be opened or committed
        """
        if self._in_transaction:
            raise RuntimeError("transaction already open")
        try:
            self.conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            raise StoreWriteError(f"begin transaction failed: {e}") from e
        self._in_transaction = True
        try:
            yield self
            end = "ROLLBACK" if dry_run else "COMMIT"
            try:
                self.conn.execute(end)
            except sqlite3.Error as e:
                raise StoreWriteError(f"{end.lower()} failed: {e}") from e
        except Exception:
            if self.conn.in_transaction:
                self.conn.execute("ROLLBACK")
            raise
        finally:
            self._in_transaction = False

    @contextmanager
    def _write(self, what: str):
        if self._in_transaction:
            begin, commit, rollback = "SAVEPOINT store_write", "RELEASE store_write", "ROLLBACK TO store_write"
        else:
            begin, commit, rollback = "BEGIN", "COMMIT", "ROLLBACK"
        try:
            self.conn.execute(begin)
        except sqlite3.Error as e:
            raise StoreWriteError(f"{what} failed: {e}") from e
        try:
            yield self.conn.cursor()
            # COMMIT can still fail, e.g. when another connection holds a read lock
            self.conn.execute(commit)
        except sqlite3.Error as e:
            self._undo(rollback)
            raise StoreWriteError(f"{what} failed: {e}") from e
        except Exception:
            self._undo(rollback)
            raise

    def _undo(self, rollback: str) -> None:
        """Leave the connection as it was before the failed write."""
        try:
            if self._in_transaction:
                self.conn.execute(rollback)
                self.conn.execute("RELEASE store_write")
            elif self.conn.in_transaction:
                self.conn.execute(rollback)
        except sqlite3.Error as e:
            logger.error(f"Rollback after failed write did not complete: {e}")

    # -- Events --

    def list_events(self) -> list[Event]:
        cur = self.conn.execute(f"SELECT {EVENT_COLUMNS} FROM events ORDER BY iso_date, id")
        return [Event.from_db_row(row) for row in cur.fetchall()]

    def get_event(self, event_id) -> Event | None:
        cur = self.conn.execute(f"SELECT {EVENT_COLUMNS} FROM events WHERE id = ?", (event_id,))
        row = cur.fetchone()
        return Event.from_db_row(row) if row else None

    def get_event_by_date(self, iso_date: str) -> Event | None:
        cur = self.conn.execute(f"SELECT {EVENT_COLUMNS} FROM events WHERE iso_date = ?", (iso_date,))
        row = cur.fetchone()
        return Event.from_db_row(row) if row else None

    def create_event(self, event: Event) -> Event:
        with self._write(f"create event {event.iso_date}") as cur:
            cur.execute("""
                INSERT INTO events (iso_date, location, distances, departure, address, remarks, alternative, event_group)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                event.iso_date,
                event.location,
                event.distances,
                event.departure,
                event.address,
                event.remarks,
                event.alternative,
                event.group,
            ))
            event_id = int(cur.lastrowid)
        logger.debug(f"Created event {event_id} for {event.iso_date}")
        return self.get_event(event_id)

    def update_event(self, event: Event) -> Event:
        with self._write(f"update event {event.id}") as cur:
            cur.execute("""
                UPDATE events
                SET iso_date = ?, location = ?, distances = ?, departure = ?, address = ?,
                    remarks = ?, alternative = ?, event_group = ?
                WHERE id = ?
            """, (
                event.iso_date,
                event.location,
                event.distances,
                event.departure,
                event.address,
                event.remarks,
                event.alternative,
                event.group,
                event.id,
            ))
            if cur.rowcount == 0:
                raise LookupError(f"event id {event.id} not found")
        return self.get_event(event.id)

    def delete_event(self, event_id) -> bool:
        with self._write(f"delete event {event_id}") as cur:
            cur.execute("DELETE FROM events WHERE id = ?", (event_id,))
            return cur.rowcount > 0

    # -- Members --

    def _dates_by_member(self, member_ids=None) -> dict[int, list[str]]:
        sql = "SELECT member_id, date_token FROM member_dates"
        params: tuple = ()
        if member_ids is not None:
            sql += f" WHERE member_id IN ({','.join('?' * len(member_ids))})"
            params = tuple(member_ids)
        sql += " ORDER BY member_id, position"
        dates: dict[int, list[str]] = {}
        for row in self.conn.execute(sql, params):
            dates.setdefault(int(row["member_id"]), []).append(row["date_token"])
        return dates

    def list_members(self) -> list[Member]:
        rows = self.conn.execute("SELECT id, name, member_group FROM members ORDER BY id").fetchall()
        dates = self._dates_by_member()
        return [Member.from_db_row(row, dates.get(int(row["id"]), [])) for row in rows]

    def get_member(self, member_id) -> Member | None:
        row = self.conn.execute("SELECT id, name, member_group FROM members WHERE id = ?", (member_id,)).fetchone()
        if not row:
            return None
        return Member.from_db_row(row, self._dates_by_member([int(row["id"])]).get(int(row["id"]), []))

    def get_member_by_name(self, name: str) -> Member | None:
        """Case-insensitive match on the full name; lowest id wins on duplicates."""
        row = self.conn.execute(
            "SELECT id FROM members WHERE LOWER(TRIM(name)) = ? ORDER BY id LIMIT 1",
            (member_key(name),)
        ).fetchone()
        return self.get_member(row["id"]) if row else None

    def _replace_dates(self, cur, member_id: int, dates: list[str]) -> None:
        cur.execute("DELETE FROM member_dates WHERE member_id = ?", (member_id,))
        cur.executemany(
            "INSERT INTO member_dates (member_id, date_token, position) VALUES (?, ?, ?)",
            [(member_id, token, position) for position, token in enumerate(dates)]
        )

    def create_member(self, member: Member) -> Member:
        member.set_dates(member.attended_dates)
        with self._write(f"create member {member.name}") as cur:
            cur.execute(
                "INSERT INTO members (name, member_group, participation_count) VALUES (?, ?, ?)",
                (member.name, member.group, member.participation_count)
            )
            member_id = int(cur.lastrowid)
            self._replace_dates(cur, member_id, member.attended_dates)
        logger.debug(f"Created member {member_id}: {member.name}")
        return self.get_member(member_id)

    def update_member(self, member: Member) -> Member:
        member.set_dates(member.attended_dates)
        with self._write(f"update member {member.id}") as cur:
            cur.execute("""
                UPDATE members
                SET name = ?, member_group = ?, participation_count = ?, updated_at = ?
                WHERE id = ?
            """, (member.name, member.group, member.participation_count, now_iso(), member.id))
            if cur.rowcount == 0:
                raise LookupError(f"member id {member.id} not found")
            self._replace_dates(cur, member.id, member.attended_dates)
        return self.get_member(member.id)

    def update_member_dates(self, member_id: int, dates: list[str]) -> None:
        """Replace a member's attended dates; the participation count follows."""
        unique = list(dict.fromkeys(dates))
        with self._write(f"update dates of member {member_id}") as cur:
            cur.execute(
                "UPDATE members SET participation_count = ?, updated_at = ? WHERE id = ?",
                (len(unique), now_iso(), member_id)
            )
            if cur.rowcount == 0:
                raise LookupError(f"member id {member_id} not found")
            self._replace_dates(cur, member_id, unique)

    def delete_member(self, member_id) -> bool:
        with self._write(f"delete member {member_id}") as cur:
            cur.execute("DELETE FROM members WHERE id = ?", (member_id,))
            return cur.rowcount > 0

    # -- Attendance --

    def _marks_by_event(self, event_id=None) -> dict[int, dict[int, AttendanceMark]]:
        sql = "SELECT event_id, member_id, name, member_group, marked_at FROM attendance_members"
        params: tuple = ()
        if event_id is not None:
            sql += " WHERE event_id = ?"
            params = (event_id,)
        marks: dict[int, dict[int, AttendanceMark]] = {}
        for row in self.conn.execute(sql + " ORDER BY event_id, member_id", params):
            marks.setdefault(int(row["event_id"]), {})[int(row["member_id"])] = AttendanceMark(
                member_id=int(row["member_id"]),
                name=row["name"],
                group=row["member_group"],
                marked_at=row["marked_at"],
            )
        return marks

    def get_attendance(self, event_id) -> AttendanceRecord | None:
        row = self.conn.execute(
            "SELECT event_id, iso_date, updated_at FROM attendance WHERE event_id = ?", (event_id,)
        ).fetchone()
        if not row:
            return None
        return AttendanceRecord(
            event_id=int(row["event_id"]),
            iso_date=row["iso_date"],
            members=self._marks_by_event(int(row["event_id"])).get(int(row["event_id"]), {}),
            updated_at=row["updated_at"],
        )

    def list_attendance(self) -> list[AttendanceRecord]:
        rows = self.conn.execute("SELECT event_id, iso_date, updated_at FROM attendance ORDER BY iso_date, event_id").fetchall()
        marks = self._marks_by_event()
        return [
            AttendanceRecord(
                event_id=int(row["event_id"]),
                iso_date=row["iso_date"],
                members=marks.get(int(row["event_id"]), {}),
                updated_at=row["updated_at"],
            )
            for row in rows
        ]

    def set_attendance(self, event_id: int, iso_date: str, members: dict[int, AttendanceMark]) -> AttendanceRecord:
        """Overwrite the whole member set of one event."""
        updated_at = now_iso()
        with self._write(f"set attendance for event {event_id}") as cur:
            cur.execute("""
                INSERT INTO attendance (event_id, iso_date, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(event_id) DO UPDATE SET iso_date = excluded.iso_date, updated_at = excluded.updated_at
            """, (event_id, iso_date, updated_at))
            cur.execute("DELETE FROM attendance_members WHERE event_id = ?", (event_id,))
            cur.executemany("""
                INSERT INTO attendance_members (event_id, member_id, name, member_group, marked_at)
                VALUES (?, ?, ?, ?, ?)
            """, [
                (event_id, int(member_id), mark.name, mark.group or "", mark.marked_at)
                for member_id, mark in members.items()
            ])
        return AttendanceRecord(event_id=event_id, iso_date=iso_date, members=dict(members), updated_at=updated_at)

    def delete_attendance(self, event_id) -> bool:
        with self._write(f"delete attendance for event {event_id}") as cur:
            cur.execute("DELETE FROM attendance WHERE event_id = ?", (event_id,))
            return cur.rowcount > 0

    def count(self, table: str) -> int:
        if table not in ("events", "members", "attendance", "attendance_members", "member_dates"):
            raise ValueError(f"unknown table: {table}")
        return int(self.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])
