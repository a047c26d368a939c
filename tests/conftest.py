"""
Pytest fixtures and configuration.

Every test runs against a fresh in-memory SQLite database. External APIs are
replaced with httpx.MockTransport handlers and a MagicMock Anthropic client.
"""
from datetime import date, datetime
from typing import Any, Callable, Optional
from unittest.mock import MagicMock

import anthropic
import httpx
import pytest

from legistrack.etl.congress_api import CongressApiClient
from legistrack.etl.govtrack import GovTrackClient
from legistrack.models.database import Bill, get_session, init_db, reset_engine
from legistrack.summarizers.llm import LLMService


@pytest.fixture(autouse=True)
def database(monkeypatch):
    """Fresh schema in an in-memory database, with test API keys."""
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("CONGRESS_API_KEY", "test-congress-key")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "")
    monkeypatch.setenv("ELEVENLABS_API_KEY", "test-elevenlabs-key")
    monkeypatch.setenv("TAVUS_API_KEY", "test-tavus-key")
    monkeypatch.setenv("DISCORD_WEBHOOK_URL", "")
    reset_engine()
    init_db()
    yield
    reset_engine()


@pytest.fixture
def no_sleep(monkeypatch):
    """Make batch pacing and polling instant."""
    sleeps = []
    monkeypatch.setattr("time.sleep", lambda seconds: sleeps.append(seconds))
    return sleeps


# =============================================================================
# BILL DATA
# =============================================================================

@pytest.fixture
def congress_bill_data() -> dict[str, Any]:
    """Bill detail record as returned by Congress.gov /bill/{congress}/{type}/{number}."""
    return {
        "congress": 118,
        "type": "HR",
        "number": "1234",
        "title": "Clean Energy Investment Act of 2023",
        "shortTitle": "Clean Energy Act",
        "introducedDate": "2023-03-01",
        "latestAction": {"actionDate": "2023-03-02", "text": "Referred to the Committee on Energy and Commerce."},
        "sponsors": [{
            "bioguideId": "S000001",
            "fullName": "Rep. Smith, Jane [D-CA-12]",
            "party": "D",
            "state": "CA",
            "district": 12,
        }],
        "cosponsors": {"count": 4, "url": "https://api.congress.gov/v3/bill/118/hr/1234/cosponsors"},
        "policyArea": {"name": "Energy"},
        "url": "https://api.congress.gov/v3/bill/118/hr/1234",
    }


@pytest.fixture
def make_bill() -> Callable[..., Bill]:
    """Store a bill and return it. Keyword arguments override the defaults."""
    def _make(bill_id: str = "118-hr-1234", **overrides) -> Bill:
        congress, bill_type, number = bill_id.split("-")
        values = {
            "id": bill_id,
            "congress": int(congress),
            "bill_type": bill_type,
            "number": int(number),
            "title": "Clean Energy Investment Act of 2023",
            "short_title": None,
            "status": "Introduced",
            "introduced_date": date(2023, 3, 1),
            "latest_action": {"date": "2023-03-02", "text": "Referred to committee."},
            "sponsors": [{"full_name": "Rep. Jane Smith", "party": "D", "state": "CA"}],
            "subjects": ["Renewable energy sources"],
            "policy_area": "Energy",
            "summary": "Provides tax credits for clean energy projects.",
            "updated_at": datetime(2024, 1, 1),
        }
        values.update(overrides)
        bill = Bill(**values)
        session = get_session()
        try:
            session.add(bill)
            session.commit()
        finally:
            session.close()
        return bill

    return _make


# =============================================================================
# EXTERNAL API MOCKS
# =============================================================================

def json_routes(routes: dict[str, Any], status_codes: Optional[dict[str, int]] = None):
    """MockTransport handler answering by URL path. Unknown paths return 404."""
    status_codes = status_codes or {}

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        for suffix, payload in routes.items():
            if path.endswith(suffix):
                return httpx.Response(status_codes.get(suffix, 200), json=payload)
        return httpx.Response(404, json={"error": "not found"})

    return handler


@pytest.fixture
def congress_api() -> Callable[..., CongressApiClient]:
    """Build a CongressApiClient whose requests go to a MockTransport handler."""
    def _make(handler) -> CongressApiClient:
        return CongressApiClient(
            client=httpx.Client(transport=httpx.MockTransport(handler)),
            min_request_interval=0,
        )

    return _make


def llm_response(text: str) -> MagicMock:
    """Anthropic Messages API response with a single text block."""
    response = MagicMock()
    response.content = [MagicMock(text=text)]
    return response


def anthropic_outage() -> anthropic.APIConnectionError:
    """Error the Anthropic client raises when the API cannot be reached."""
    return anthropic.APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))


@pytest.fixture
def anthropic_client() -> MagicMock:
    client = MagicMock()
    client.messages.create.return_value = llm_response("{}")
    return client


@pytest.fixture
def llm(anthropic_client) -> LLMService:
    return LLMService(client=anthropic_client, retry_delay=0)


@pytest.fixture
def govtrack_api() -> Callable[..., GovTrackClient]:
    """Build a GovTrackClient whose requests go to a MockTransport handler."""
    def _make(handler) -> GovTrackClient:
        return GovTrackClient(client=httpx.Client(transport=httpx.MockTransport(handler)))

    return _make
