import os

# Stored member dates are DD/MM/YYYY tokens, so a year is matched by suffix
DATE_TOKEN_FORMAT = "%d/%m/%Y"
ISO_DATE_FORMAT = "%Y-%m-%d"

# Database paths
DEFAULT_DB_PATH = os.getenv("CARRE_VERT_DB_PATH", "data/carre_vert.db")
SCHEMA_FILENAME = "schema.sql"
# Seconds a connection waits on a locked database before a write fails
DB_TIMEOUT_SECONDS = float(os.getenv("CARRE_VERT_DB_TIMEOUT", "5.0"))

# Defaults for records created by the CSV import
DEFAULT_MEMBER_GROUP = os.getenv("DEFAULT_MEMBER_GROUP", "A")
DEFAULT_EVENT_LOCATION = "Sortie Club"
DEFAULT_EVENT_DEPARTURE = "09:00"
DEFAULT_EVENT_GROUP = "All"
IMPORT_MARKER = "Imported from CSV"

# Pause between successive store writes (seconds)
WRITE_DELAY_SECONDS = float(os.getenv("WRITE_DELAY_SECONDS", "0.2"))

# Spreadsheet layout: group(s), first name, last name, total, then one column per date
CSV_GROUP_COLUMN = 0
CSV_FIRST_NAME_COLUMN = 1
CSV_LAST_NAME_COLUMN = 2
CSV_FIRST_DATE_COLUMN = 4
CSV_PRESENT_VALUE = "1"

# Participation distribution (label, min, max); max=None means open-ended
BUCKETS = [
	("0", 0, 0),
	("1-5", 1, 5),
	("6-10", 6, 10),
	("11-20", 11, 20),
	("21-30", 21, 30),
	("31-40", 31, 40),
	("41+", 41, None),
]

ATTENDANCE_ACTIONS = ("add", "remove")
