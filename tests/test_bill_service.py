"""Bill listing, search fallback, trending and subjects."""
from datetime import date, datetime
from unittest.mock import MagicMock

import httpx
import pytest
from pydantic import ValidationError

from legistrack.etl.bills import BillFetcher
from legistrack.exceptions import InvalidBillIdError, UpstreamAPIError
from legistrack.services.bills import BillSearchParams, BillService, split_subject_filters
from legistrack.summarizers.llm import LLMService


@pytest.fixture
def bills(make_bill):
    make_bill("118-hr-1", title="Solar Tax Credit Act", bill_type="hr", policy_area="Energy",
              subjects=["Solar energy"], sponsors=[{"state": "CA", "party": "D"}],
              introduced_date=date(2023, 1, 10), updated_at=datetime(2024, 1, 3))
    make_bill("118-s-2", title="Farm Support Act", bill_type="s", policy_area="Agriculture and Food",
              subjects=["Crop insurance"], sponsors=[{"state": "IA", "party": "R"}],
              introduced_date=date(2023, 2, 10), updated_at=datetime(2024, 1, 2))
    make_bill("117-hr-3", title="Wind Power Act", bill_type="hr", policy_area="Energy",
              subjects=["Wind energy"], sponsors=[{"state": "TX", "party": "R"}],
              introduced_date=date(2021, 5, 1), updated_at=datetime(2024, 1, 1))


def _ids(page):
    return [b["id"] for b in page.data]


def test_split_subject_filters():
    assert split_subject_filters(["policy-energy", "Solar energy"]) == (["energy"], ["Solar energy"])


def test_get_bills_default_order(bills):
    page = BillService().get_bills()
    assert _ids(page) == ["118-s-2", "118-hr-1", "117-hr-3"]
    assert page.to_dict()["pagination"] == {"page": 1, "limit": 20, "total": 3, "pages": 1}


@pytest.mark.parametrize("params,expected", [
    ({"congress": 118}, ["118-s-2", "118-hr-1"]),
    ({"bill_type": "HR"}, ["118-hr-1", "117-hr-3"]),
    ({"sponsor_state": "ca"}, ["118-hr-1"]),
    ({"sponsor_party": "R"}, ["118-s-2", "117-hr-3"]),
    ({"subjects": ["policy-energy"]}, ["118-hr-1", "117-hr-3"]),
    ({"subjects": ["Crop insurance"]}, ["118-s-2"]),
    ({"query": "wind"}, ["117-hr-3"]),
    ({"introduced_after": date(2023, 1, 1), "introduced_before": date(2023, 1, 31)}, ["118-hr-1"]),
])
def test_get_bills_filters(bills, params, expected):
    assert _ids(BillService().get_bills(BillSearchParams(**params))) == expected


def test_get_bills_pagination_caps_limit(bills):
    page = BillService().get_bills(BillSearchParams(limit=500, page=1, sort="title", order="asc"))
    assert page.limit == 50
    assert _ids(page) == ["118-s-2", "118-hr-1", "117-hr-3"]

    second = BillService().get_bills(BillSearchParams(limit=2, page=2, sort="title", order="asc"))
    assert _ids(second) == ["117-hr-3"]
    assert second.pages == 2


def test_search_params_validation():
    with pytest.raises(ValidationError):
        BillSearchParams(page=0)
    with pytest.raises(ValidationError):
        BillSearchParams(sort="sponsor")


def test_listing_includes_comprehensive_analysis(bills):
    LLMService(client=MagicMock()).save_comprehensive_analysis("118-hr-1", {"executiveSummary": "Solar."})
    data = {b["id"]: b for b in BillService().get_bills().data}
    assert data["118-hr-1"]["comprehensive_analysis"]["executiveSummary"] == "Solar."
    assert "comprehensive_analysis" not in data["118-s-2"]


def test_get_bill_validates_id():
    with pytest.raises(InvalidBillIdError):
        BillService().get_bill("hr1234")


def test_get_bill_falls_back_to_fetcher(bills):
    fetcher = MagicMock()
    fetcher.ensure_bill_in_database.return_value = None
    service = BillService(fetcher=fetcher)

    assert service.get_bill("118-hr-1").title == "Solar Tax Credit Act"
    fetcher.ensure_bill_in_database.assert_not_called()

    assert service.get_bill("118-hr-999") is None
    fetcher.ensure_bill_in_database.assert_called_once_with("118-hr-999")


def test_search_uses_api_when_database_has_few_results(bills, congress_bill_data):
    fetcher = MagicMock()
    fetcher.api.search_bills.return_value = {"bills": [congress_bill_data], "pagination": {"count": 12}}

    result = BillService(fetcher=fetcher).search_bills("energy")

    assert result["from_api"] is True
    assert [b["id"] for b in result["data"]] == ["118-hr-1234"]
    assert result["pagination"]["total"] == 12
    assert fetcher.api.search_bills.call_args.kwargs["congress"] == 118
    assert BillService().get_bill("118-hr-1234").title == "Clean Energy Investment Act of 2023"


def test_search_falls_back_to_database_on_api_error(bills):
    fetcher = MagicMock()
    fetcher.api.search_bills.side_effect = UpstreamAPIError("Rate limit exceeded", 429)

    result = BillService(fetcher=fetcher).search_bills("Act")

    assert result["from_api"] is False
    assert len(result["data"]) == 3


def test_search_falls_back_to_database_when_api_unreachable(bills, congress_api, no_sleep):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    result = BillService(fetcher=BillFetcher(api=congress_api(handler))).search_bills("Act")

    assert result["from_api"] is False
    assert len(result["data"]) == 3


def test_search_prefers_database_with_enough_results(make_bill):
    for number in range(1, 12):
        make_bill(f"118-hr-{number}", title=f"Energy Act {number}")
    fetcher = MagicMock()

    result = BillService(fetcher=fetcher).search_bills("energy")

    assert result["from_api"] is False
    assert result["pagination"]["total"] == 11
    fetcher.api.search_bills.assert_not_called()


def test_trending_bills(bills):
    assert [b["id"] for b in BillService().get_trending_bills(2)] == ["118-hr-1", "118-s-2"]


def test_subjects_derived_from_bills(bills):
    subjects = BillService().get_all_subjects()
    ids = {s["id"] for s in subjects}
    assert {"solar-energy", "crop-insurance", "policy-energy", "policy-agriculture-and-food"} <= ids

    # Stored on first use, so a new service reads them from the table
    assert {s["id"] for s in BillService().get_all_subjects()} == ids


def test_bills_by_user_interests(bills):
    service = BillService()
    assert [b["id"] for b in service.get_bills_by_user_interests(["wind"])] == ["117-hr-3"]
    assert [b["id"] for b in service.get_bills_by_user_interests(["energy", "solar"], require_all=True)] == [
        "118-hr-1"
    ]
    assert len(service.get_bills_by_user_interests(["space travel"], limit=2)) == 2
