import os
from datetime import date

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Offline CDS and no debounce between test requests
os.environ["CDS_API_URL"] = ""
os.environ["CDS_AUTH_TOKEN"] = ""
os.environ["DUMMY_MODE"] = "true"
os.environ["DEBOUNCE_SECONDS"] = "0"

from epicare.main import app
from epicare.models.cds import AnalysisResult
from epicare.models.triage import TriageContext
from epicare.services.alert_adapter import normalize_alert
from epicare.services.session import sessions

# Override module-level config directly (avoids fragile importlib.reload)
import epicare.services.session as _session_mod

_session_mod.DEBOUNCE_SECONDS = 0.0


@pytest.fixture(autouse=True)
def clean_sessions():
    sessions.clear()
    yield
    sessions.clear()


@pytest_asyncio.fixture
async def async_client():
    """Provide an async httpx client for async HTTP tests."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def make_alert():
    """Build a normalized alert from keyword arguments of the raw backend shape."""
    def _make(source: str = "prompt", **raw):
        return normalize_alert(raw, source)
    return _make


@pytest.fixture
def empty_analysis():
    return AnalysisResult()


@pytest.fixture
def stable_context():
    """Adherent patient on monotherapy with unchanged seizure frequency."""
    return TriageContext(
        adherence="Always take",
        active_medications=["carbamazepine"],
        epilepsy_type="Focal",
        baseline_frequency="Monthly",
        current_frequency="Monthly",
        days_since_last_visit=30,
        weight_kg=60,
        weight_recorded_at=date(2026, 9, 1),
        last_visit_date=date(2026, 9, 19),
        as_of=date(2026, 10, 19),
    )
