"""HTTP API routes and error mapping."""
import json
from unittest.mock import MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from legistrack.api import Services, create_app, status_for
from legistrack.etl.bills import BillFetcher
from legistrack.exceptions import (
    ConfigurationError, GenerationError, InvalidBillIdError, LLMUnavailableError, NotFoundError,
    UpstreamAPIError,
)
from legistrack.models.database import BillSubject, get_session
from legistrack.services.bills import BillService
from legistrack.services.voting import VotingService
from legistrack.summarizers.llm import LLMService

from tests.conftest import anthropic_outage, json_routes, llm_response


@pytest.fixture
def services(congress_api):
    fetcher = BillFetcher(api=congress_api(lambda request: httpx.Response(404)))
    return Services(bills=BillService(fetcher=fetcher))


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


@pytest.fixture
def bill(make_bill):
    return make_bill(short_title="Clean Energy Act")


@pytest.mark.parametrize("exc,status", [
    (NotFoundError("x"), 404),
    (InvalidBillIdError("x"), 400),
    (ValueError("x"), 400),
    (LLMUnavailableError("x"), 503),
    (ConfigurationError("x"), 503),
    (UpstreamAPIError("x", 429), 502),
    (GenerationError("x"), 502),
    (RuntimeError("x"), 500),
])
def test_status_for(exc, status):
    assert status_for(exc) == status


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["services"] == {"llm": False, "speech": True, "video": True}


def test_list_and_get_bill(client, bill):
    listing = client.get("/api/bills", params={"bill_type": "hr"}).json()
    assert [b["id"] for b in listing["data"]] == ["118-hr-1234"]
    assert listing["pagination"]["total"] == 1

    response = client.get("/api/bills/118-hr-1234")
    assert response.status_code == 200
    assert response.json()["short_title"] == "Clean Energy Act"


def test_bill_errors(client):
    assert client.get("/api/bills/118-hr-999").status_code == 404
    response = client.get("/api/bills/hr999")
    assert response.status_code == 400
    assert "Invalid bill ID" in response.json()["error"]
    assert client.get("/api/bills", params={"sort": "sponsor"}).status_code == 400


def test_trending_and_subjects(client, bill):
    assert [b["id"] for b in client.get("/api/bills/trending").json()["data"]] == ["118-hr-1234"]
    names = {s["name"] for s in client.get("/api/subjects").json()["data"]}
    assert names == {"Renewable energy sources", "Energy"}


def test_search(client, bill):
    assert client.get("/api/bills/search", params={"q": "  "}).status_code == 400
    result = client.get("/api/bills/search", params={"q": "energy"}).json()
    assert result["from_api"] is True
    assert result["data"] == []


def test_share_and_contact_message(client, bill, make_bill):
    share = client.get("/api/bills/118-hr-1234/share").json()
    assert share["message"] == "Check out HR 1234: Clean Energy Act"

    letter = client.get("/api/bills/118-hr-1234/contact-message", params={"position": "oppose"}).json()
    assert "I urge you to oppose this legislation" in letter["message"]

    missing = client.get("/api/bills/118-hr-1234/contact-message", params={"bioguide_id": "X000000"})
    assert missing.status_code == 404


def test_ai_routes_without_key(client, bill):
    assert client.post("/api/bills/118-hr-1234/analysis").status_code == 503
    questions = client.get("/api/bills/118-hr-1234/follow-up-questions").json()["questions"]
    assert len(questions) == 5


def test_ai_routes_with_llm(services, bill):
    anthropic_client = MagicMock()
    anthropic_client.messages.create.return_value = llm_response(json.dumps({"summary": "Solar credits."}))
    services.llm = LLMService(client=anthropic_client, retry_delay=0)
    client = TestClient(create_app(services))

    analysis = client.post("/api/bills/118-hr-1234/analysis").json()
    assert analysis["summary"] == "Solar credits."
    assert client.get("/api/bills/118-hr-1234").json()["ai_analysis"]["summary"] == "Solar credits."

    anthropic_client.messages.create.return_value = llm_response("It adds a 30% credit.")
    chat = client.post("/api/bills/118-hr-1234/chat", json={
        "question": "What does it do?",
        "history": [{"role": "user", "content": "Hi"}, {"role": "assistant", "content": "Hello"}],
    })
    assert chat.json() == {"response": "It adds a 30% credit."}

    overview = client.post("/api/bills/118-hr-1234/podcast-overview")
    assert overview.status_code == 502
    assert "No comprehensive analysis" in overview.json()["error"]


def test_unreachable_llm_returns_bad_gateway(services, bill):
    anthropic_client = MagicMock()
    anthropic_client.messages.create.side_effect = anthropic_outage()
    services.llm = LLMService(client=anthropic_client, retry_delay=0)
    client = TestClient(create_app(services))

    response = client.post("/api/bills/118-hr-1234/chat", json={"question": "What does it do?"})

    assert response.status_code == 502
    assert "Anthropic API error" in response.json()["error"]


def test_compare_needs_two_bills(client, bill):
    response = client.post("/api/bills/compare", json={"bill_ids": ["118-hr-1234"]})
    assert response.status_code == 400


def test_tracking_routes(client, bill):
    created = client.post("/api/users/user-1/tracked/118-hr-1234", json={"notes": "Watch this", "tags": ["energy"]})
    assert created.status_code == 201
    assert created.json()["user_notes"] == "Watch this"

    client.get("/api/bills/118-hr-1234", params={"user_id": "user-1"})
    tracked = client.get("/api/users/user-1/tracked").json()["data"]
    assert tracked[0]["tracking"]["view_count"] == 2

    stats = client.get("/api/users/user-1/stats").json()
    assert stats["engagement"]["bills_tracked"] == 1
    assert stats["tracking"]["total_views"] == 2

    assert client.delete("/api/users/user-1/tracked/118-hr-1234").status_code == 200
    assert client.delete("/api/users/user-1/tracked/118-hr-1234").status_code == 404
    assert client.post("/api/users/user-1/tracked/118-hr-999").status_code == 404


def test_user_routes(client, bill, services):
    services.notifications.create_notification("user-1", "system", "Welcome")

    assert client.get("/api/users/user-1/impact/118-hr-1234").status_code == 404
    assert [n["title"] for n in client.get("/api/users/user-1/notifications").json()["data"]] == ["Welcome"]
    recommendations = client.get("/api/users/user-1/recommendations").json()["data"]
    assert [b["id"] for b in recommendations] == ["118-hr-1234"]


def test_representatives_and_podcasts(client):
    assert client.get("/api/representatives", params={"state": "CA"}).json() == {"data": []}
    assert client.get("/api/podcasts/latest").json() == {"data": []}


def test_video_routes(services, bill):
    video = MagicMock()
    video.generate_bill_briefing.return_value = {"video_id": "v1", "status": "queued"}
    video.get_video_status.return_value = {"video_id": "v1", "status": "completed"}
    services.video = video
    client = TestClient(create_app(services))

    response = client.post("/api/videos/briefing", json={"bill_id": "118-hr-1234", "user_name": "Sam"})
    assert response.status_code == 201
    video.generate_bill_briefing.assert_called_once_with(
        "118-hr-1234", "Clean Energy Act", "Provides tax credits for clean energy projects.",
        user_name="Sam", user_id=None,
    )
    assert client.get("/api/videos/v1").json()["status"] == "completed"


def test_timeline_routes(client, bill):
    timeline = client.get("/api/bills/118-hr-1234/timeline").json()
    assert timeline["current_stage"] == "introduced"
    assert timeline["actions"] == []

    assert client.get("/api/bills/118-hr-1234/cosponsors").json() == {"data": []}
    assert client.get("/api/bills/118-hr-1234/committees").json() == {"data": []}
    assert client.get("/api/bills/118-hr-999/timeline").status_code == 404
    assert client.get("/api/bills/118-hr/timeline").status_code == 400


def test_tag_routes(client, bill):
    session = get_session()
    try:
        session.add(BillSubject(id="policy-energy", name="Energy", type="policy"))
        session.commit()
    finally:
        session.close()

    generated = client.post("/api/bills/118-hr-1234/tags").json()["data"]
    assert [(t["subject_id"], t["confidence_score"]) for t in generated] == [("policy-energy", 90)]

    feedback = client.post(f"/api/tags/{generated[0]['id']}/feedback", json={"accurate": False})
    assert feedback.json()["confidence_score"] == 70
    assert client.get("/api/bills/118-hr-1234/tags", params={"min_confidence": 80}).json() == {"data": []}

    bills = client.get("/api/subjects/policy-energy/bills", params={"min_confidence": 50}).json()["data"]
    assert [b["id"] for b in bills] == ["118-hr-1234"]
    assert client.post("/api/tags/999/feedback", json={"accurate": True}).status_code == 404
    assert client.post("/api/bills/118-hr-999/tags").status_code == 404


def test_vote_routes(services, bill, govtrack_api):
    services.voting = VotingService(
        govtrack=govtrack_api(json_routes({
            "/vote": {"meta": {"total_count": 0}, "objects": []},
            "/vote/5": {"id": 5, "chamber": "house", "congress": 118, "number": 5, "result": "Passed"},
            "/vote_voter": {"objects": []},
        })),
        api=services.bills.fetcher.api,
    )
    client = TestClient(create_app(services))

    assert client.get("/api/bills/118-hr-1234/votes").json()["votes"] == []
    details = client.get("/api/votes/5").json()
    assert details["result"] == "Passed"
    assert details["voters"] == []
    assert client.get("/api/votes/house").json() == {"data": []}
    assert client.get("/api/representatives/X000000/votes").status_code == 404
