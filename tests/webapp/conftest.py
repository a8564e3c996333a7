import pytest
from fastapi.testclient import TestClient
from carre_vert import constants
from carre_vert.db.store import RecordStore
from carre_vert.webapp.api import get_store
from carre_vert.webapp.main import app


@pytest.fixture
def api_store():
	store = RecordStore(":memory:")
	yield store
	store.close()


@pytest.fixture
def client(api_store, monkeypatch):
	# every request under tests/webapp/ talks to the same in-memory store
	monkeypatch.setattr(constants, "WRITE_DELAY_SECONDS", 0)
	app.dependency_overrides[get_store] = lambda: api_store
	yield TestClient(app)
	app.dependency_overrides.clear()
