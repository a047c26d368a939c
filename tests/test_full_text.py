"""Bill text versions and full text storage."""
import httpx

from legistrack.etl.full_text import FullTextFetcher, pick_text_url
from legistrack.models.database import Bill, get_session

TEXT_VERSIONS = {"textVersions": [{
    "type": "Introduced in House",
    "formats": [
        {"type": "PDF", "url": "https://www.congress.gov/118/bills/hr1234/BILLS-118hr1234ih.pdf"},
        {"type": "Formatted XML", "url": "https://www.congress.gov/118/bills/hr1234/BILLS-118hr1234ih.xml"},
    ],
}]}


def _fetcher(congress_api, text_status=200):
    def handler(request):
        if request.url.host == "www.congress.gov":
            return httpx.Response(text_status, text="<bill>SECTION 1. SHORT TITLE.</bill>")
        if request.url.path.endswith("/text"):
            return httpx.Response(200, json=TEXT_VERSIONS)
        return httpx.Response(404)

    api = congress_api(handler)
    return FullTextFetcher(api=api, client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_pick_text_url_prefers_requested_then_pdf():
    formats = TEXT_VERSIONS["textVersions"][0]["formats"]
    assert pick_text_url(formats).endswith(".xml")
    assert pick_text_url(formats, "Formatted Text").endswith(".pdf")
    assert pick_text_url([{"type": "HTML", "url": "x.htm"}]) == "x.htm"
    assert pick_text_url([]) is None


def test_get_text_content(congress_api):
    fetcher = _fetcher(congress_api)
    assert fetcher.get_text_content("118-hr-1234") == "<bill>SECTION 1. SHORT TITLE.</bill>"
    assert len(fetcher.get_available_formats("118-hr-1234")) == 2


def test_update_missing_full_text(make_bill, congress_api, no_sleep):
    make_bill()
    result = _fetcher(congress_api).update_missing_full_text()

    assert result.count == 1
    session = get_session()
    try:
        bill = session.get(Bill, "118-hr-1234")
    finally:
        session.close()
    assert bill.full_text_url.endswith(".xml")
    assert "SHORT TITLE" in bill.full_text_content


def test_download_failure_skips_bill(make_bill, congress_api, no_sleep):
    make_bill()
    result = _fetcher(congress_api, text_status=500).update_full_text_for_bills(["118-hr-1234"])
    assert result.success
    assert result.count == 0


def _per_bill_fetcher(congress_api, unreachable=()):
    """Each bill's text lives at https://www.congress.gov/text/<number>.xml."""
    def handler(request):
        if request.url.host == "www.congress.gov":
            if request.url.path in unreachable:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, text="<bill>SECTION 1.</bill>")
        if request.url.path.endswith("/text"):
            number = request.url.path.split("/")[-2]
            return httpx.Response(200, json={"textVersions": [{"formats": [
                {"type": "Formatted XML", "url": f"https://www.congress.gov/text/{number}.xml"},
            ]}]})
        return httpx.Response(404)

    return FullTextFetcher(api=congress_api(handler), client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_full_text_is_paced_in_batches_of_five(make_bill, congress_api, no_sleep):
    bill_ids = [f"118-hr-{number}" for number in range(1, 12)]
    for bill_id in bill_ids:
        make_bill(bill_id)

    result = _per_bill_fetcher(congress_api).update_full_text_for_bills(bill_ids)

    assert result.count == 11
    assert no_sleep == [0.5, 0.5]


def test_unreachable_text_skips_only_that_bill(make_bill, congress_api, no_sleep):
    make_bill("118-hr-1")
    make_bill("118-hr-2")

    result = _per_bill_fetcher(congress_api, unreachable={"/text/1.xml"}).update_full_text_for_bills(
        ["118-hr-1", "118-hr-2"]
    )

    assert result.count == 1
    session = get_session()
    try:
        assert session.get(Bill, "118-hr-1").full_text_content is None
        assert session.get(Bill, "118-hr-2").full_text_content == "<bill>SECTION 1.</bill>"
    finally:
        session.close()
