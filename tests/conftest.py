import pytest
from fastapi.testclient import TestClient

from vitalwatch.config import Settings
from vitalwatch.main import create_app
from vitalwatch.models import VitalKind
from vitalwatch.store import MeasurementStore


@pytest.fixture
def store():
    return MeasurementStore()


@pytest.fixture
def settings():
    """Settings with the background sweep disabled so tests drive evaluation."""
    return Settings(evaluation_interval=0, send_timeout=1.0)


@pytest.fixture
def api(settings, store):
    app = create_app(settings, store)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def fill():
    """Append a list of (value, timestamp) pairs of one kind for one patient."""
    def _fill(store, patient_id, kind: VitalKind, points):
        for value, ts in points:
            store.append(patient_id, value, kind, ts)
    return _fill
