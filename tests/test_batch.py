"""Summary, podcast overview and batch update pipelines."""
from datetime import datetime
from unittest.mock import MagicMock

import httpx

from legistrack.etl.bills import SyncResult
from legistrack.models.database import Bill, get_session
from legistrack.services.batch_update import BillBatchUpdateService
from legistrack.services.podcasts import PodcastOverviewService
from legistrack.services.summaries import BillSummaryService

from tests.conftest import anthropic_outage, json_routes, llm_response


def _load(bill_id):
    session = get_session()
    try:
        return session.get(Bill, bill_id)
    finally:
        session.close()


# Summaries

def test_official_summary_is_stored(make_bill, congress_api):
    make_bill(summary=None)
    api = congress_api(json_routes({
        "/bill/118/hr/1234/summaries": {"summaries": [{"text": "<p>Official CRS summary.</p>"}]},
    }))

    summaries = BillSummaryService(api=api).get_bill_summaries("118-hr-1234")

    assert summaries[0]["text"] == "<p>Official CRS summary.</p>"
    assert _load("118-hr-1234").summary == "<p>Official CRS summary.</p>"


def test_summary_errors_return_empty_list(congress_api):
    api = congress_api(lambda request: httpx.Response(500))
    assert BillSummaryService(api=api).get_bill_summaries("118-hr-1234") == []
    assert BillSummaryService(api=api).get_bill_summaries("bogus") == []


def test_missing_summaries_fall_back_to_llm(make_bill, congress_api, llm, anthropic_client, no_sleep):
    make_bill("118-hr-1", summary=None)
    make_bill("118-hr-2", summary=None, full_text_content="SECTION 1. Grants for rural broadband.")
    api = congress_api(json_routes({
        "/bill/118/hr/1/summaries": {"summaries": [{"text": "Official summary."}]},
        "/bill/118/hr/2/summaries": {"summaries": []},
    }))
    anthropic_client.messages.create.return_value = llm_response("Funds rural broadband.")

    result = BillSummaryService(api=api, llm=llm).update_missing_summaries()

    assert result.count == 2
    assert _load("118-hr-1").summary == "Official summary."
    assert _load("118-hr-2").summary == "Funds rural broadband."
    assert anthropic_client.messages.create.call_count == 1


def test_enhanced_summary_reports_failure():
    result = BillSummaryService(api=MagicMock()).generate_enhanced_summary("118-hr-404")
    assert result["success"] is False
    assert "Bill not found" in result["message"]


def test_latest_summary_prefers_official_then_llm(make_bill, congress_api, llm, anthropic_client):
    make_bill("118-hr-1", summary=None)
    make_bill("118-hr-2", summary=None)
    api = congress_api(json_routes({
        "/bill/118/hr/1/summaries": {"summaries": [{"text": "Official summary."}]},
        "/bill/118/hr/2/summaries": {"summaries": []},
    }))
    anthropic_client.messages.create.return_value = llm_response("Generated summary.")
    service = BillSummaryService(api=api, llm=llm)

    assert service.get_latest_summary("118-hr-1") == "Official summary."
    assert service.get_latest_summary("118-hr-2") == "Generated summary."
    assert service.get_latest_summary("118-hr-999") is None
    assert anthropic_client.messages.create.call_count == 1


def test_summary_llm_outage_skips_only_that_bill(make_bill, congress_api, llm, anthropic_client, no_sleep):
    make_bill("118-hr-1", summary=None)
    make_bill("118-hr-2", summary=None)
    api = congress_api(json_routes({
        "/bill/118/hr/1/summaries": {"summaries": [{"text": "Official summary."}]},
        "/bill/118/hr/2/summaries": {"summaries": []},
    }))
    anthropic_client.messages.create.side_effect = anthropic_outage()

    result = BillSummaryService(api=api, llm=llm).update_missing_summaries()

    assert result.count == 1
    assert _load("118-hr-1").summary == "Official summary."
    assert _load("118-hr-2").summary is None


def test_summaries_are_paced_in_batches_of_five(make_bill, congress_api, no_sleep):
    for number in range(1, 8):
        make_bill(f"118-hr-{number}", summary=None)
    api = congress_api(lambda request: httpx.Response(200, json={"summaries": [{"text": "Official."}]}))

    result = BillSummaryService(api=api).update_missing_summaries()

    assert result.count == 7
    assert no_sleep == [0.5]


# Podcast overviews

def test_generate_missing_podcast_overviews(make_bill, llm, anthropic_client, no_sleep):
    for number in range(1, 5):
        make_bill(f"118-hr-{number}", ai_analysis={"summary": "s"})
        if number != 4:
            llm.save_comprehensive_analysis(f"118-hr-{number}", {"executiveSummary": f"Bill {number}"})
    make_bill("118-hr-5")
    anthropic_client.messages.create.return_value = llm_response("Welcome to the show.")

    result = PodcastOverviewService(llm=llm).generate_missing_podcast_overviews()

    # hr-4 has no comprehensive analysis, hr-5 has no analysis at all
    assert result.count == 3
    assert _load("118-hr-1").podcast_overview == "Welcome to the show."
    assert _load("118-hr-5").podcast_overview is None
    assert no_sleep == [2.0]


def test_podcasts_from_generated_content(make_bill, llm, anthropic_client):
    make_bill("118-hr-1")
    make_bill("118-hr-2", podcast_overview="Already done.")
    llm.save_comprehensive_analysis("118-hr-1", {"executiveSummary": "One"})
    llm.save_comprehensive_analysis("118-hr-2", {"executiveSummary": "Two"})
    anthropic_client.messages.create.return_value = llm_response("New episode.")

    result = PodcastOverviewService(llm=llm).generate_from_generated_content()

    assert result.count == 1
    assert _load("118-hr-2").podcast_overview == "Already done."
    assert [b.id for b in PodcastOverviewService(llm=llm).get_bills_with_podcast_overviews()] == [
        "118-hr-1", "118-hr-2"
    ]


def test_podcast_outage_skips_only_that_bill(make_bill, llm, anthropic_client, no_sleep):
    for number in range(1, 4):
        make_bill(f"118-hr-{number}", ai_analysis={"summary": "s"})
        llm.save_comprehensive_analysis(f"118-hr-{number}", {"executiveSummary": f"Bill {number}"})
    anthropic_client.messages.create.side_effect = [
        anthropic_outage(), llm_response("Episode two."), llm_response("Episode three."),
    ]

    result = PodcastOverviewService(llm=llm).update_podcast_overviews_for_bills(
        ["118-hr-1", "118-hr-2", "118-hr-3"]
    )

    overviews = [_load(f"118-hr-{number}").podcast_overview for number in range(1, 4)]
    assert result.count == 2
    assert overviews.count(None) == 1
    assert set(overviews) - {None} == {"Episode two.", "Episode three."}


# Batch update

def test_update_all_bills_counts_each_step():
    fetcher = MagicMock()
    fetcher.sync_bills.return_value = SyncResult(True, 5, "Synced 5 bills")
    fetcher.update_policy_areas.return_value = SyncResult(True, 2, "ok")
    summaries = MagicMock()
    summaries.update_missing_summaries.side_effect = RuntimeError("boom")
    full_text = MagicMock()
    full_text.update_missing_full_text.return_value = SyncResult(False, 3, "partial")
    podcasts = MagicMock()
    podcasts.generate_missing_podcast_overviews.return_value = SyncResult(True, 1, "ok")

    result = BillBatchUpdateService(fetcher, summaries, full_text, podcasts).update_all_bills(limit=30)

    assert result["success"] is True
    assert result["details"] == {
        "bills_updated": 5,
        "summaries_updated": 0,
        "full_text_updated": 0,
        "policy_areas_updated": 2,
        "podcast_overviews_updated": 1,
    }
    assert "Updated 8 total items" in result["message"]
    summaries.update_missing_summaries.assert_called_once_with(20)
    full_text.update_missing_full_text.assert_called_once_with(15)


def test_update_specific_bills_only_fills_gaps(make_bill):
    make_bill("118-hr-1", summary="Has one", full_text_content="text", podcast_overview=None)
    fetcher = MagicMock()
    fetcher.sync_multiple_bills.return_value = SyncResult(True, 1, "ok")
    summaries, full_text, podcasts = MagicMock(), MagicMock(), MagicMock()
    podcasts.update_podcast_overviews_for_bills.return_value = SyncResult(True, 1, "ok")

    result = BillBatchUpdateService(fetcher, summaries, full_text, podcasts).update_specific_bills(["118-hr-1"])

    assert result["details"]["podcast_overviews_updated"] == 1
    summaries.update_summaries_for_bills.assert_not_called()
    full_text.update_full_text_for_bills.assert_not_called()


def test_bills_needing_updates(make_bill):
    make_bill("118-hr-1", last_synced=datetime.utcnow(), full_text_url="https://x", policy_area="Energy")
    make_bill("118-hr-2", last_synced=datetime(2020, 1, 1), full_text_url="https://x")
    make_bill("118-hr-3", last_synced=datetime.utcnow(), full_text_url=None)

    assert sorted(BillBatchUpdateService().get_bills_needing_updates()) == ["118-hr-2", "118-hr-3"]
