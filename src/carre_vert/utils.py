import datetime
import logging
import re

from carre_vert.constants import DATE_TOKEN_FORMAT, ISO_DATE_FORMAT

YEAR_PATTERN = re.compile(r"^\d{4}$")


def setup_logging(verbose=False):
    stream_log_level = logging.DEBUG if verbose else logging.INFO

    # stream level is set by the verbose arg
    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(stream_log_level)

    # file level is always DEBUG
    file_handler = logging.FileHandler('debug.log')
    file_handler.setLevel(logging.DEBUG)

    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[stream_handler, file_handler]
    )
    return logging.getLogger("cli")


def is_valid_year(year) -> bool:
    return isinstance(year, str) and bool(YEAR_PATTERN.match(year))


def iso_to_token(iso_date: str) -> str:
    """'2026-01-03' -> '03/01/2026'"""
    return datetime.datetime.strptime(iso_date, ISO_DATE_FORMAT).strftime(DATE_TOKEN_FORMAT)


def parse_date_token(value: str) -> datetime.date | None:
    """
    Parse a stored date token. Accepts DD/MM/YYYY (the stored format) and
    YYYY-MM-DD. Returns None when neither format matches.
    """
    if not value:
        return None
    value = value.strip()
    for fmt in (DATE_TOKEN_FORMAT, ISO_DATE_FORMAT):
        try:
            return datetime.datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def token_in_year(token: str, year: str) -> bool:
    """Period membership for stored member dates is a suffix match on the year."""
    return token.strip().endswith(f"/{year}")


def iso_in_year(iso_date: str, year: str) -> bool:
    return iso_date.startswith(f"{year}-")


def now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="seconds")
