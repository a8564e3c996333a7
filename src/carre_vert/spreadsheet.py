"""
Parser for the wide attendance spreadsheet.

Layout (one row per member, one column per outing date):

    groupe(s),prénom,Nom,∑,01/01,03/01,04/01,...
    A,Alice,Martin,2,,1,1

The pre-computed total column is ignored; counts are always rederived.
"""

import csv
import datetime
import io
import re
from dataclasses import dataclass, field

from carre_vert import constants
from carre_vert.errors import ParseError
from carre_vert.logging_config import get_logger
from carre_vert.models import member_key

DATE_HEADER_PATTERN = re.compile(r"^\d{2}/\d{2}$")

logger = get_logger("spreadsheet", "import", console_output=False)


@dataclass
class DateColumn:
    index: int
    header: str
    iso_date: str


@dataclass
class AttendanceRow:
    """One member row of the spreadsheet, reduced to the dates marked present."""

    group: str
    first_name: str
    last_name: str
    present_dates: list[str] = field(default_factory=list)
    line: int | None = None

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def lookup_key(self) -> str:
        return member_key(self.name)


@dataclass
class ParseResult:
    rows: list[AttendanceRow] = field(default_factory=list)
    errors: list[ParseError] = field(default_factory=list)
    date_columns: list[DateColumn] = field(default_factory=list)
    skipped: int = 0


def header_to_iso(header: str, year: str) -> str | None:
    """'03/01' + '2026' -> '2026-01-03'. None for non-date headers or impossible dates."""
    header = header.strip()
    if not DATE_HEADER_PATTERN.match(header):
        return None
    day, month = header.split("/")
    try:
        return datetime.date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        logger.warning(f"Ignoring column '{header}': not a valid date in {year}")
        return None


def extract_date_columns(header: list[str], year: str) -> list[DateColumn]:
    columns = []
    for index in range(constants.CSV_FIRST_DATE_COLUMN, len(header)):
        iso_date = header_to_iso(header[index], year)
        if iso_date:
            columns.append(DateColumn(index=index, header=header[index].strip(), iso_date=iso_date))
        elif header[index].strip():
            logger.debug(f"Column {index} '{header[index].strip()}' is not a date column")
    return columns


def parse_attendance_csv(csv_text: str, year: str) -> ParseResult:
    """
    Parse the attendance spreadsheet for one import year.

    Rows shorter than the header are reported as ParseError and skipped.
    Rows without a first or last name are skipped silently (separator rows).

    Raises:
        ParseError: if the document has no header row.
    """
    if csv_text.startswith("\ufeff"):
        csv_text = csv_text[1:]

    reader = csv.reader(io.StringIO(csv_text))
    header = None
    for raw in reader:
        if any(cell.strip() for cell in raw):
            header = raw
            break
    if header is None:
        raise ParseError("CSV is empty: no header row")

    result = ParseResult(date_columns=extract_date_columns(header, year))
    logger.info(f"Found {len(result.date_columns)} date columns for {year}")

    for raw in reader:
        line = reader.line_num
        if not any(cell.strip() for cell in raw):
            continue

        if len(raw) < len(header):
            result.errors.append(ParseError(
                f"expected {len(header)} columns, got {len(raw)}", line=line
            ))
            result.skipped += 1
            continue

        first_name = raw[constants.CSV_FIRST_NAME_COLUMN].strip()
        last_name = raw[constants.CSV_LAST_NAME_COLUMN].strip()
        if not first_name or not last_name:
            logger.debug(f"Line {line}: no first/last name, skipping")
            result.skipped += 1
            continue

        present = [
            column.iso_date
            for column in result.date_columns
            if raw[column.index].strip() == constants.CSV_PRESENT_VALUE
        ]
        result.rows.append(AttendanceRow(
            group=raw[constants.CSV_GROUP_COLUMN].strip(),
            first_name=first_name,
            last_name=last_name,
            present_dates=present,
            line=line,
        ))

    logger.info(f"Parsed {len(result.rows)} member rows ({result.skipped} skipped, {len(result.errors)} malformed)")
    return result
