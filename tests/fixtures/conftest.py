"""File builder fixtures turning RowSpec lists into the spreadsheet CSV format."""

import csv
import io
from pathlib import Path
import pytest
from .data_specs import RowSpec

HEADER_PREFIX = ["groupe(s)", "prénom", "Nom", "∑"]


def build_attendance_csv(rows: list[RowSpec], columns: list[str] | None = None) -> str:
    """Render rows as the wide spreadsheet: one row per member, one column per date."""
    if columns is None:
        columns = []
        for row in rows:
            for header in list(row.dates) + list(row.cells):
                if header not in columns:
                    columns.append(header)

    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(HEADER_PREFIX + columns)
    for row in rows:
        cells = []
        for header in columns:
            if header in row.cells:
                cells.append(row.cells[header])
            else:
                cells.append("1" if header in row.dates else "")
        total = row.total if row.total is not None else str(len(row.dates))
        writer.writerow([row.group, row.first_name, row.last_name, total] + cells)
    return out.getvalue()


@pytest.fixture
def attendance_csv_builder():
    """Factory: build the attendance CSV text from RowSpec objects.

    Example:
        csv_text = attendance_csv_builder([RowSpec("Alice", "Martin", dates=["03/01"])])
        csv_text = attendance_csv_builder(rows, columns=["03/01", "04/01", "Total"])
    """
    return build_attendance_csv


@pytest.fixture
def attendance_csv_file(tmp_path):
    """Factory: write the attendance CSV to a file and return its path."""
    def _build(rows: list[RowSpec], columns: list[str] | None = None, filename: str = "sorties.csv") -> Path:
        path = tmp_path / filename
        path.write_text(build_attendance_csv(rows, columns), encoding="utf-8")
        return path

    return _build
