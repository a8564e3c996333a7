import pytest
from carre_vert import reconciliation
from carre_vert.models import AttendanceMark, Event, Member
from tests.fixtures.conftest import build_attendance_csv
from tests.fixtures.data_specs import RowSpec


SAMPLE_CSV = build_attendance_csv([
	RowSpec("Alice", "Martin", group="A", dates=["03/01", "04/01"]),
	RowSpec("Bob", "Durand", group="B", dates=["06/01", "07/01"]),
])


def test_health(client):
	r = client.get("/api/health")
	assert r.status_code == 200
	assert r.json() == {"status": "ok"}


def test_version(client):
	r = client.get("/api/version")
	assert r.status_code == 200
	assert "version" in r.json()


def test_members_and_events(client, api_store):
	api_store.create_member(Member(name="Alice Martin", group="A", attended_dates=["03/01/2026"]))
	api_store.create_event(Event(iso_date="2026-01-03", location="Wavre"))

	members = client.get("/api/members").json()["members"]
	events = client.get("/api/events").json()["events"]

	assert members[0]["name"] == "Alice Martin"
	assert members[0]["participationCount"] == 1
	assert events[0]["isoDate"] == "2026-01-03"
	assert events[0]["location"] == "Wavre"


@pytest.mark.integration
class TestImport:
	def test_import_then_scores(self, client):
		r = client.post("/api/admin/import-csv", json={"csv": SAMPLE_CSV, "year": "2026"})

		assert r.status_code == 200
		body = r.json()
		assert body["success"] is True
		assert body["message"] == "Import complete"
		assert body["stats"]["membersCreated"] == 2
		assert body["stats"]["eventsCreated"] == 4

		scores = client.get("/api/scores", params={"year": "2026"}).json()
		assert [(e["name"], e["creditedCount"], e["rank"]) for e in scores["entries"]] == [
			("Bob Durand", 2, 1),
			("Alice Martin", 1, 2),
		]

	def test_dry_run_writes_nothing(self, client, api_store):
		r = client.post("/api/admin/import-csv", json={"csv": SAMPLE_CSV, "year": "2026", "dryRun": True})

		assert r.status_code == 200
		assert r.json()["stats"]["dryRun"] is True
		assert api_store.count("members") == 0
		assert api_store.count("events") == 0

	def test_invalid_year(self, client):
		r = client.post("/api/admin/import-csv", json={"csv": SAMPLE_CSV, "year": "26"})

		assert r.status_code == 400

	def test_empty_csv_is_a_failed_run(self, client):
		r = client.post("/api/admin/import-csv", json={"csv": "", "year": "2026"})

		assert r.status_code == 500
		assert r.json()["detail"]["completed"] is False

	def test_concurrent_import_is_refused(self, client):
		reconciliation._RUN_LOCK.acquire()
		try:
			r = client.post("/api/admin/import-csv", json={"csv": SAMPLE_CSV, "year": "2026"})
		finally:
			reconciliation._RUN_LOCK.release()

		assert r.status_code == 409


class TestAttendance:
	def _seed(self, store):
		alice = store.create_member(Member(name="Alice Martin", group="A"))
		event = store.create_event(Event(iso_date="2026-01-03"))
		return alice, event

	def test_add_and_get(self, client, api_store):
		alice, event = self._seed(api_store)

		r = client.post("/api/admin/attendance", json={
			"eventId": event.id, "memberId": alice.id, "name": "Alice Martin",
			"group": "A", "action": "add", "isoDate": "2026-01-03",
		})

		assert r.status_code == 200
		assert r.json() == {"success": True, "members": 1}
		record = client.get("/api/admin/attendance", params={"eventId": event.id}).json()
		assert record["members"][str(alice.id)]["name"] == "Alice Martin"

	def test_remove(self, client, api_store):
		alice, event = self._seed(api_store)
		api_store.set_attendance(event.id, event.iso_date, {
			alice.id: AttendanceMark(member_id=alice.id, name=alice.name, group="A", marked_at="2026-01-03T09:00:00+00:00"),
		})

		r = client.post("/api/admin/attendance", json={"eventId": event.id, "memberId": alice.id, "action": "remove"})

		assert r.status_code == 200
		assert r.json()["members"] == 0

	def test_missing_record_returns_empty_members(self, client, api_store):
		_, event = self._seed(api_store)

		r = client.get("/api/admin/attendance", params={"eventId": event.id})

		assert r.status_code == 200
		assert r.json() == {"members": {}}

	def test_all_attendance(self, client, api_store):
		alice, event = self._seed(api_store)
		api_store.set_attendance(event.id, event.iso_date, {})

		r = client.get("/api/admin/attendance")

		assert r.status_code == 200
		assert list(r.json()) == [str(event.id)]

	@pytest.mark.parametrize("payload", [
		{"memberId": 1, "action": "add"},
		{"eventId": 1, "memberId": 1, "action": "toggle"},
		{"eventId": 1, "memberId": 1, "action": "add", "name": "Alice Martin"},
	])
	def test_validation_errors(self, client, payload):
		r = client.post("/api/admin/attendance", json=payload)

		assert r.status_code == 400

	def test_unknown_event_is_a_server_error(self, client):
		r = client.post("/api/admin/attendance", json={
			"eventId": 999, "memberId": 1, "name": "Alice Martin", "action": "add", "isoDate": "2026-01-03",
		})

		assert r.status_code == 500
		assert r.json()["detail"] == "Failed to update attendance"


def test_scores_invalid_year(client):
	r = client.get("/api/scores", params={"year": "20x6"})

	assert r.status_code == 400


def test_scores_empty_store(client):
	r = client.get("/api/scores", params={"year": "2026"})

	assert r.status_code == 200
	body = r.json()
	assert body["entries"] == []
	assert sum(bucket["count"] for bucket in body["buckets"]) == 0
	assert len(body["monthly"]) == 12
