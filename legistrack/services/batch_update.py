"""Runs the bill refresh pipeline: data, summaries, full text, policy areas, podcasts."""

from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog
from sqlalchemy import or_

from legistrack.etl.bills import BillFetcher, SyncResult
from legistrack.etl.full_text import FullTextFetcher
from legistrack.models.database import Bill, get_session
from legistrack.services.podcasts import PodcastOverviewService
from legistrack.services.summaries import BillSummaryService

log = structlog.get_logger()

STALE_AFTER = timedelta(hours=24)


def _run_step(name: str, step: Callable[[], SyncResult]) -> int:
    """Run one pipeline step, counting a failure as zero updates."""
    try:
        result = step()
    except Exception as e:
        log.error("Batch update step failed", step=name, error=str(e))
        return 0

    if not result.success:
        log.warning("Batch update step had issues", step=name, message=result.message)
        return 0
    log.info("Batch update step complete", step=name, count=result.count)
    return result.count


class BillBatchUpdateService:
    """Refreshes bills and their derived content in one pass."""

    def __init__(self, fetcher: Optional[BillFetcher] = None, summaries: Optional[BillSummaryService] = None,
                 full_text: Optional[FullTextFetcher] = None, podcasts: Optional[PodcastOverviewService] = None):
        self._fetcher = fetcher
        self._summaries = summaries
        self._full_text = full_text
        self._podcasts = podcasts

    @property
    def fetcher(self) -> BillFetcher:
        if self._fetcher is None:
            self._fetcher = BillFetcher()
        return self._fetcher

    @property
    def summaries(self) -> BillSummaryService:
        if self._summaries is None:
            self._summaries = BillSummaryService(api=self.fetcher.api)
        return self._summaries

    @property
    def full_text(self) -> FullTextFetcher:
        if self._full_text is None:
            self._full_text = FullTextFetcher(api=self.fetcher.api)
        return self._full_text

    @property
    def podcasts(self) -> PodcastOverviewService:
        if self._podcasts is None:
            self._podcasts = PodcastOverviewService()
        return self._podcasts

    def update_all_bills(self, limit: int = 50) -> dict:
        """Run every step in order and report per-step counts."""
        log.info("Starting comprehensive bill update", limit=limit)
        details = {
            "bills_updated": _run_step("bills", lambda: self.fetcher.sync_bills(limit=limit)),
            "summaries_updated": _run_step(
                "summaries", lambda: self.summaries.update_missing_summaries(min(limit, 20))
            ),
            "full_text_updated": _run_step(
                "full_text", lambda: self.full_text.update_missing_full_text(min(limit, 15))
            ),
            "policy_areas_updated": _run_step(
                "policy_areas", lambda: self.fetcher.update_policy_areas(limit)
            ),
            "podcast_overviews_updated": _run_step(
                "podcast_overviews", lambda: self.podcasts.generate_missing_podcast_overviews(min(limit, 10))
            ),
        }

        total = sum(details.values())
        return {
            "success": True,
            "message": f"Comprehensive update completed! Updated {total} total items across all categories.",
            "details": details,
        }

    def _ids_missing(self, bill_ids: list[str], column) -> list[str]:
        session = get_session()
        try:
            return [
                row.id for row in
                session.query(Bill.id).filter(Bill.id.in_(bill_ids), column.is_(None)).all()
            ]
        finally:
            session.close()

    def update_specific_bills(self, bill_ids: list[str]) -> dict:
        """Sync the given bills and fill only what each is missing."""
        details = {
            "bills_updated": _run_step("bills", lambda: self.fetcher.sync_multiple_bills(bill_ids)),
            "summaries_updated": 0,
            "full_text_updated": 0,
            "podcast_overviews_updated": 0,
        }

        need_summaries = self._ids_missing(bill_ids, Bill.summary)
        if need_summaries:
            details["summaries_updated"] = _run_step(
                "summaries", lambda: self.summaries.update_summaries_for_bills(need_summaries)
            )

        need_text = self._ids_missing(bill_ids, Bill.full_text_content)
        if need_text:
            details["full_text_updated"] = _run_step(
                "full_text", lambda: self.full_text.update_full_text_for_bills(need_text)
            )

        need_overviews = self._ids_missing(bill_ids, Bill.podcast_overview)
        if need_overviews:
            details["podcast_overviews_updated"] = _run_step(
                "podcast_overviews", lambda: self.podcasts.update_podcast_overviews_for_bills(need_overviews)
            )

        total = sum(details.values())
        return {
            "success": True,
            "message": f"Updated {total} items across {len(bill_ids)} bills",
            "details": details,
        }

    def get_bills_needing_updates(self, limit: int = 50) -> list[str]:
        """IDs of bills that are stale or missing summary, text URL or policy area."""
        cutoff = datetime.utcnow() - STALE_AFTER
        session = get_session()
        try:
            rows = session.query(Bill.id).filter(or_(
                Bill.last_synced.is_(None),
                Bill.last_synced < cutoff,
                Bill.summary.is_(None),
                Bill.full_text_url.is_(None),
                Bill.policy_area.is_(None),
            )).limit(limit).all()
            return [row.id for row in rows]
        finally:
            session.close()
