from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from carre_vert import __version__, constants
from carre_vert.attendance import get_all_attendance, set_attendance
from carre_vert.db.store import RecordStore
from carre_vert.errors import ReconciliationInProgress, StoreWriteError, ValidationError
from carre_vert.logging_config import get_logger
from carre_vert.reconciliation import ReconciliationEngine
from carre_vert.scoring import get_scores

api = APIRouter(prefix="/api", tags=["api"])

logger = get_logger("api", "api")


def get_store():
	store = RecordStore(constants.DEFAULT_DB_PATH)
	try:
		yield store
	finally:
		store.close()


class ImportRequest(BaseModel):
	csv: str
	year: str
	dryRun: bool = False


class AttendanceRequest(BaseModel):
	eventId: int | str | None = None
	memberId: int | str | None = None
	isoDate: str | None = None
	name: str | None = None
	group: str | None = None
	action: str | None = None


@api.get("/health")
def health():
	return {"status": "ok"}


@api.get("/version")
def version():
	return {"version": __version__}


@api.get("/members")
def api_get_members(store: RecordStore = Depends(get_store)):
	return {"members": [member.to_dict() for member in store.list_members()]}


@api.get("/events")
def api_get_events(store: RecordStore = Depends(get_store)):
	return {"events": [event.to_dict() for event in store.list_events()]}


@api.post("/admin/import-csv")
def api_import_csv(body: ImportRequest, store: RecordStore = Depends(get_store)):
	engine = ReconciliationEngine(store, write_delay=constants.WRITE_DELAY_SECONDS)
	try:
		summary = engine.reconcile_period(body.csv, body.year, dry_run=body.dryRun, wait=False)
	except ValidationError as e:
		raise HTTPException(status_code=400, detail=str(e))
	except ReconciliationInProgress as e:
		raise HTTPException(status_code=409, detail=str(e))

	result = summary.to_dict()
	if not summary.completed and not summary.cancelled:
		logger.error(f"Import for {body.year} did not complete: {summary.errors}")
		raise HTTPException(status_code=500, detail=result)
	return {"success": True, "message": "Import complete", "stats": result}


@api.get("/admin/attendance")
def api_get_attendance(eventId: int | None = None, store: RecordStore = Depends(get_store)):
	if eventId is None:
		return get_all_attendance(store)
	record = store.get_attendance(eventId)
	if record is None:
		return {"members": {}}
	return record.to_dict()


@api.post("/admin/attendance")
def api_set_attendance(body: AttendanceRequest, store: RecordStore = Depends(get_store)):
	try:
		return set_attendance(
			store,
			event_id=body.eventId,
			member_id=body.memberId,
			name=body.name,
			group=body.group,
			action=body.action,
			iso_date=body.isoDate,
		)
	except ValidationError as e:
		raise HTTPException(status_code=400, detail=str(e))
	except StoreWriteError as e:
		logger.error(f"Error updating attendance: {e}")
		raise HTTPException(status_code=500, detail="Failed to update attendance")


@api.get("/scores")
def api_get_scores(year: str, store: RecordStore = Depends(get_store)):
	try:
		report = get_scores(store, year)
	except ValidationError as e:
		raise HTTPException(status_code=400, detail=str(e))
	return report.to_dict()
