"""Bill ids, Congress.gov conversion and bill sync."""
from datetime import date

import httpx
import pytest

from legistrack.etl.bills import BillFetcher, bill_to_model, make_bill_id, parse_bill_id, slugify
from legistrack.exceptions import InvalidBillIdError
from legistrack.models.database import Bill, BillSubject, get_session

from tests.conftest import json_routes


def _load(bill_id):
    session = get_session()
    try:
        return session.get(Bill, bill_id)
    finally:
        session.close()


def test_parse_bill_id():
    assert parse_bill_id("118-HR-1234") == (118, "hr", 1234)
    assert make_bill_id(118, "SJRES", 7) == "118-sjres-7"


@pytest.mark.parametrize("bad", ["", "118-hr", "118-hr-12a", "x-hr-1", "118--1", None])
def test_parse_bill_id_rejects_malformed(bad):
    with pytest.raises(InvalidBillIdError):
        parse_bill_id(bad)


def test_invalid_bill_id_is_a_value_error():
    with pytest.raises(ValueError):
        parse_bill_id("not-a-bill")


def test_slugify():
    assert slugify("  Environmental Protection ") == "environmental-protection"


def test_bill_to_model(congress_bill_data):
    bill = bill_to_model(congress_bill_data)

    assert bill.id == "118-hr-1234"
    assert bill.introduced_date == date(2023, 3, 1)
    assert bill.status == "Referred to the Committee on Energy and Commerce."
    assert bill.latest_action["date"] == "2023-03-02"
    assert bill.cosponsors_count == 4
    assert bill.policy_area == "Energy"
    assert bill.sponsors[0]["state"] == "CA"
    assert bill.sponsors[0]["bioguide_id"] == "S000001"


def test_bill_to_model_from_list_entry():
    bill = bill_to_model({"congress": 117, "type": "S", "number": 5, "title": "A bill"})
    assert bill.id == "117-s-5"
    assert bill.status == "Unknown"
    assert bill.sponsors == []
    assert bill.subjects == []


def test_sync_bills_saves_details(congress_api, congress_bill_data):
    api = congress_api(json_routes({
        "/bill/118/hr/1234": {"bill": congress_bill_data},
        "/bill": {"bills": [{"congress": 118, "type": "HR", "number": "1234", "title": "List title"}]},
    }))

    result = BillFetcher(api=api).sync_bills(limit=1)

    assert result.success
    assert result.count == 1
    stored = _load("118-hr-1234")
    assert stored.title == "Clean Energy Investment Act of 2023"
    assert stored.last_synced is not None


def test_sync_bills_reports_list_failure(congress_api):
    api = congress_api(lambda request: httpx.Response(429))
    result = BillFetcher(api=api).sync_bills()
    assert not result.success
    assert "Rate limit" in result.message


def test_save_bills_keeps_generated_content(make_bill, congress_bill_data):
    make_bill(ai_analysis={"summary": "stored"}, podcast_overview="Welcome!", summary="Existing summary")

    BillFetcher(api=object()).save_bills([bill_to_model(congress_bill_data)])

    stored = _load("118-hr-1234")
    assert stored.status == "Referred to the Committee on Energy and Commerce."
    assert stored.ai_analysis == {"summary": "stored"}
    assert stored.podcast_overview == "Welcome!"
    assert stored.summary == "Existing summary"


def test_ensure_bill_in_database_fetches_once(congress_api, congress_bill_data):
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(200, json={"bill": congress_bill_data})

    fetcher = BillFetcher(api=congress_api(handler))
    assert fetcher.ensure_bill_in_database("118-hr-1234").id == "118-hr-1234"
    assert fetcher.ensure_bill_in_database("118-hr-1234").id == "118-hr-1234"
    assert len(calls) == 1


def test_ensure_bill_in_database_unknown_bill(congress_api):
    fetcher = BillFetcher(api=congress_api(lambda request: httpx.Response(404)))
    assert fetcher.ensure_bill_in_database("118-hr-99999") is None


def test_update_policy_areas(make_bill, congress_api):
    make_bill(policy_area=None, subjects=[])
    api = congress_api(json_routes({
        "/bill/118/hr/1234/subjects": {"subjects": {
            "legislativeSubjects": [{"name": "Solar energy"}, {"name": "Tax credits"}],
            "policyArea": {"name": "Energy"},
        }},
    }))

    result = BillFetcher(api=api).update_policy_areas()

    assert result.count == 1
    stored = _load("118-hr-1234")
    assert stored.policy_area == "Energy"
    assert stored.subjects == ["Solar energy", "Tax credits"]

    session = get_session()
    try:
        ids = {s.id for s in session.query(BillSubject).all()}
    finally:
        session.close()
    assert ids == {"solar-energy", "tax-credits", "policy-energy"}


def test_resyncing_subjects_counts_each_bill_once(make_bill, congress_api):
    make_bill("118-hr-1", policy_area=None, subjects=[])
    make_bill("118-hr-2")
    subjects = {"subjects": {"legislativeSubjects": [{"name": "Taxation"}], "policyArea": {"name": "Taxation"}}}
    api = congress_api(json_routes({
        "/bill/118/hr/1/subjects": subjects,
        "/bill/118/hr/2/subjects": subjects,
    }))
    fetcher = BillFetcher(api=api)

    fetcher.update_bill_subjects("118-hr-1")
    fetcher.update_bill_subjects("118-hr-1")
    fetcher.update_bill_subjects("118-hr-2")

    session = get_session()
    try:
        counts = {s.id: s.count for s in session.query(BillSubject).all()}
    finally:
        session.close()
    assert counts == {"taxation": 2, "policy-taxation": 2}


def test_sync_multiple_bills_survives_network_failure(congress_api, congress_bill_data, no_sleep):
    def handler(request):
        if request.url.path.endswith("/bill/118/hr/1"):
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"bill": congress_bill_data})

    result = BillFetcher(api=congress_api(handler)).sync_multiple_bills(["118-hr-1", "118-hr-1234"])

    assert result.count == 1
    assert len(result.errors) == 1
    assert result.errors[0].startswith("118-hr-1:")
    assert _load("118-hr-1234") is not None
