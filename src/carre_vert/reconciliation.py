#!/usr/bin/env python3
"""
Attendance Reconciliation Engine

Re-imports one period (a calendar year) of the attendance spreadsheet into the
record store. Every run rebuilds the period from scratch, so importing the same
CSV twice leaves the store in the same state.

Architecture:
    LoadExisting
        - Fetch all events and members once; this snapshot drives the whole run
        - A failure here aborts before anything is cleared
    ClearPeriod
        - Every event of the period gets an empty attendance set (event kept)
        - Every member loses the dates of the period; changed members are saved
    ProcessRows
        - Resolve or create the member of each row
        - Resolve or create the event of each present date
        - Collect pending attendance per event and the member's new dates
    ApplyUpdates
        - Write each pending attendance set as a full replacement
        - Then write every member whose dates differ from what is stored

Row and entity failures are collected in the run summary; the run carries on
with the next item. Runs in one process are serialized by a lock.
"""

import logging
import sqlite3
import threading
import time
from dataclasses import dataclass, field

from carre_vert import constants
from carre_vert.errors import (
    CarreVertError,
    ParseError,
    ReconciliationCancelled,
    ReconciliationInProgress,
    ResolutionConflict,
    StoreWriteError,
    ValidationError,
)
from carre_vert.identity import IdentityResolver
from carre_vert.models import AttendanceMark, Event, Member
from carre_vert.spreadsheet import AttendanceRow, parse_attendance_csv
from carre_vert.utils import iso_in_year, iso_to_token, is_valid_year, now_iso, token_in_year

_RUN_LOCK = threading.Lock()


class CancellationToken:
    """Checked between rows and between store writes."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ReconciliationCancelled("reconciliation cancelled")


@dataclass
class ReconciliationSummary:
    """Outcome of one run, returned to the caller instead of raising."""

    year: str
    events_processed: int = 0
    members_updated: int = 0
    events_created: int = 0
    members_created: int = 0
    events_cleared: int = 0
    members_cleared: int = 0
    rows_parsed: int = 0
    rows_skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    cancelled: bool = False
    completed: bool = False
    dry_run: bool = False

    def record_error(self, message: str) -> None:
        """Count one failed item. The message is listed once even when many items hit it."""
        self.failed += 1
        if message not in self.errors:
            self.errors.append(message)

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "eventsProcessed": self.events_processed,
            "membersUpdated": self.members_updated,
            "eventsCreated": self.events_created,
            "membersCreated": self.members_created,
            "eventsCleared": self.events_cleared,
            "membersCleared": self.members_cleared,
            "rowsParsed": self.rows_parsed,
            "rowsSkipped": self.rows_skipped,
            "failed": self.failed,
            "errors": list(self.errors),
            "cancelled": self.cancelled,
            "completed": self.completed,
            "dryRun": self.dry_run,
        }


@dataclass
class ReconciliationContext:
    """Everything one run knows: the loaded snapshot and the pending writes."""

    year: str
    events: list[Event]
    members: list[Member]
    resolver: IdentityResolver
    summary: ReconciliationSummary
    cancel_token: CancellationToken

    # member_id -> dates as last written to the store
    persisted_dates: dict[int, list[str]] = field(default_factory=dict)
    # member_id -> dates as derived by this run
    working_dates: dict[int, list[str]] = field(default_factory=dict)
    # event_id -> member_id -> mark
    pending_attendance: dict[int, dict[int, AttendanceMark]] = field(default_factory=dict)
    pending_iso_dates: dict[int, str] = field(default_factory=dict)


class ReconciliationEngine:
    """
    Runs the LoadExisting -> ClearPeriod -> ProcessRows -> ApplyUpdates pipeline
    against a RecordStore.
    """

    def __init__(self, store, write_delay: float = constants.WRITE_DELAY_SECONDS, clock=now_iso, verbose: bool = False):
        self.store = store
        self.write_delay = write_delay
        self.clock = clock
        self.verbose = verbose
        self.logger = self._setup_logging()
        self._last_write = None

    def _setup_logging(self) -> logging.Logger:
        from carre_vert.logging_config import get_logger
        level = 'DEBUG' if self.verbose else 'INFO'
        return get_logger('reconciliation', 'import', level=level, console_output=True)

    def _throttle(self) -> None:
        """Keep at least write_delay seconds between two store writes."""
        if self.write_delay > 0 and self._last_write is not None:
            remaining = self.write_delay - (time.monotonic() - self._last_write)
            if remaining > 0:
                time.sleep(remaining)
        self._last_write = time.monotonic()

    def reconcile_period(
        self,
        csv_text: str,
        year: str,
        cancel_token: CancellationToken | None = None,
        dry_run: bool = False,
        wait: bool = True,
    ) -> ReconciliationSummary:
        """
        Rebuild one year of attendance from the spreadsheet.

        Args:
            csv_text: Spreadsheet content
            year: Four-digit import year (e.g. "2026")
            cancel_token: Optional token checked at every row/entity boundary
            dry_run: Run everything inside a transaction that is rolled back
            wait: Block until a concurrent run finishes (otherwise raise)

        Returns:
            ReconciliationSummary with counts and collected errors

        Raises:
            ValidationError: year is not a four-digit string
            ReconciliationInProgress: wait=False and another run is active
        """
        year = str(year).strip()
        if not is_valid_year(year):
            raise ValidationError(f"invalid year '{year}': expected four digits")
        if csv_text is None:
            raise ValidationError("missing CSV content")

        if not _RUN_LOCK.acquire(blocking=wait):
            raise ReconciliationInProgress("another import is already running")
        try:
            summary = ReconciliationSummary(year=year, dry_run=dry_run)
            token = cancel_token or CancellationToken()
            self._last_write = None
            if dry_run:
                try:
                    with self.store.transaction(dry_run=True):
                        self._run(csv_text, year, token, summary)
                except StoreWriteError as e:
                    summary.completed = False
                    summary.record_error(f"Dry run aborted: {e}")
                    self.logger.error(f"Dry run for {year} aborted: {e}")
            else:
                self._run(csv_text, year, token, summary)
            return summary
        finally:
            _RUN_LOCK.release()

    def _run(self, csv_text: str, year: str, token: CancellationToken, summary: ReconciliationSummary) -> None:
        self.logger.info(f"Reconciling attendance for {year}{' (dry run)' if summary.dry_run else ''}")

        try:
            parsed = parse_attendance_csv(csv_text, year)
        except ParseError as e:
            summary.record_error(f"Invalid CSV: {e}")
            self.logger.error(f"Import aborted, invalid CSV: {e}")
            return
        summary.rows_parsed = len(parsed.rows)
        summary.rows_skipped = parsed.skipped
        for error in parsed.errors:
            summary.record_error(f"Skipped row, {error}")

        try:
            ctx = self.load_existing(year, summary, token)
        except (sqlite3.Error, CarreVertError) as e:
            summary.record_error(f"Failed to load existing records: {e}")
            self.logger.error(f"Import aborted while loading existing records: {e}")
            return

        phase = "ClearPeriod"
        try:
            self.clear_period(ctx)
            phase = "ProcessRows"
            self.process_rows(ctx, parsed.rows)
            phase = "ApplyUpdates"
            self.apply_updates(ctx)
        except ReconciliationCancelled:
            summary.cancelled = True
            summary.record_error(f"Cancelled during {phase}")
            self.logger.warning(f"Reconciliation for {year} cancelled during {phase}")
            return

        summary.completed = True
        self.logger.info(
            f"Import complete for {year}: {summary.events_processed} events, "
            f"{summary.members_updated} members updated, {summary.failed} failures"
        )

    # ------------------------------------------------------------------
    # LoadExisting
    # ------------------------------------------------------------------

    def load_existing(self, year: str, summary: ReconciliationSummary, token: CancellationToken) -> ReconciliationContext:
        events = self.store.list_events()
        members = self.store.list_members()
        self.logger.info(f"Loaded {len(events)} events and {len(members)} members")

        resolver = IdentityResolver(self.store, events, members, before_write=self._throttle)
        ctx = ReconciliationContext(
            year=year,
            events=events,
            members=members,
            resolver=resolver,
            summary=summary,
            cancel_token=token,
        )
        for member in members:
            ctx.persisted_dates[member.id] = list(member.attended_dates)
            ctx.working_dates[member.id] = list(member.attended_dates)
        return ctx

    # ------------------------------------------------------------------
    # ClearPeriod
    # ------------------------------------------------------------------

    def clear_period(self, ctx: ReconciliationContext) -> None:
        summary = ctx.summary
        period_events = [event for event in ctx.events if iso_in_year(event.iso_date, ctx.year)]
        self.logger.info(f"Clearing attendance for {len(period_events)} existing {ctx.year} events")

        for event in period_events:
            ctx.cancel_token.raise_if_cancelled()
            try:
                self._throttle()
                self.store.set_attendance(event.id, event.iso_date, {})
                summary.events_cleared += 1
            except StoreWriteError as e:
                summary.record_error(f"Failed to clear attendance for {event.iso_date}: {e}")

        self.logger.info(f"Removing {ctx.year} dates from member statistics")
        for member in ctx.members:
            dates = ctx.working_dates[member.id]
            kept = [d for d in dates if not token_in_year(d, ctx.year)]
            ctx.working_dates[member.id] = kept
            if len(kept) == len(dates):
                continue

            ctx.cancel_token.raise_if_cancelled()
            try:
                self._throttle()
                self.store.update_member_dates(member.id, kept)
                ctx.persisted_dates[member.id] = list(kept)
                summary.members_cleared += 1
            except (StoreWriteError, LookupError) as e:
                # working set stays cleared; ApplyUpdates retries the write
                summary.record_error(f"Failed to clear {ctx.year} dates of {member.name}: {e}")

    # ------------------------------------------------------------------
    # ProcessRows
    # ------------------------------------------------------------------

    def process_rows(self, ctx: ReconciliationContext, rows: list[AttendanceRow]) -> None:
        for row in rows:
            ctx.cancel_token.raise_if_cancelled()
            self.process_row(ctx, row)
        self.logger.info(
            f"Processed {len(rows)} rows: {len(ctx.pending_attendance)} events with attendance, "
            f"{ctx.summary.members_created} new members, {ctx.summary.events_created} new events"
        )

    def process_row(self, ctx: ReconciliationContext, row: AttendanceRow) -> None:
        summary = ctx.summary
        try:
            member, created = ctx.resolver.resolve_member(row.first_name, row.last_name, row.group)
        except (ResolutionConflict, StoreWriteError) as e:
            summary.record_error(f"Line {row.line} ({row.name}): {e}")
            return

        if created:
            summary.members_created += 1
            ctx.persisted_dates[member.id] = []
            ctx.working_dates[member.id] = []
        dates = ctx.working_dates.setdefault(member.id, [])

        marked_at = self.clock()
        for iso_date in row.present_dates:
            try:
                event, event_created = ctx.resolver.resolve_event(iso_date)
            except (ResolutionConflict, StoreWriteError) as e:
                summary.record_error(str(e))
                continue
            if event_created:
                summary.events_created += 1

            ctx.pending_attendance.setdefault(event.id, {})[member.id] = AttendanceMark(
                member_id=member.id,
                name=member.name,
                group=row.group or member.group,
                marked_at=marked_at,
            )
            ctx.pending_iso_dates[event.id] = event.iso_date

            # duplicate date columns must not count twice
            token = iso_to_token(iso_date)
            if token not in dates:
                dates.append(token)

        self.logger.debug(f"{member.name}: {len(row.present_dates)} present dates")

    # ------------------------------------------------------------------
    # ApplyUpdates
    # ------------------------------------------------------------------

    def apply_updates(self, ctx: ReconciliationContext) -> None:
        summary = ctx.summary
        self.logger.info(f"Applying attendance updates for {len(ctx.pending_attendance)} events")
        for event_id in sorted(ctx.pending_attendance):
            ctx.cancel_token.raise_if_cancelled()
            try:
                self._throttle()
                self.store.set_attendance(event_id, ctx.pending_iso_dates[event_id], ctx.pending_attendance[event_id])
                summary.events_processed += 1
            except StoreWriteError as e:
                summary.record_error(f"Failed to write attendance for {ctx.pending_iso_dates[event_id]}: {e}")

        # member updates only start once every event write has been attempted
        changed = [
            member_id for member_id in sorted(ctx.working_dates)
            if set(ctx.working_dates[member_id]) != set(ctx.persisted_dates.get(member_id, []))
        ]
        self.logger.info(f"Applying statistics updates for {len(changed)} members")
        for member_id in changed:
            ctx.cancel_token.raise_if_cancelled()
            dates = ctx.working_dates[member_id]
            try:
                self._throttle()
                self.store.update_member_dates(member_id, dates)
                ctx.persisted_dates[member_id] = list(dates)
                summary.members_updated += 1
            except (StoreWriteError, LookupError) as e:
                summary.record_error(f"Failed to update statistics of member {member_id}: {e}")


def reconcile_period(store, csv_text: str, year: str, **kwargs) -> ReconciliationSummary:
    """Run one reconciliation against ``store``. See ReconciliationEngine.reconcile_period."""
    engine_kwargs = {k: kwargs.pop(k) for k in ("write_delay", "clock", "verbose") if k in kwargs}
    return ReconciliationEngine(store, **engine_kwargs).reconcile_period(csv_text, year, **kwargs)
