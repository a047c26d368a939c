"""Official Congress.gov summaries, with AI-written summaries as fallback."""

import time
from datetime import datetime
from typing import Optional

import structlog

from legistrack.cache import TTLCache
from legistrack.config import get_config
from legistrack.etl.bills import SyncResult, parse_bill_id
from legistrack.etl.congress_api import CongressApiClient
from legistrack.exceptions import LegisTrackError, NotFoundError
from legistrack.models.database import Bill, get_session
from legistrack.summarizers.llm import LLMService

log = structlog.get_logger()


def _load_bill(bill_id: str) -> Optional[Bill]:
    session = get_session()
    try:
        return session.get(Bill, bill_id)
    finally:
        session.close()


class BillSummaryService:
    """Keeps ``bills.summary`` filled."""

    def __init__(self, api: Optional[CongressApiClient] = None, llm: Optional[LLMService] = None):
        self.config = get_config()
        self._api = api
        self._llm = llm
        self.cache = TTLCache(self.config.summary_cache_ttl, name="bill_summaries")

    @property
    def api(self) -> CongressApiClient:
        if self._api is None:
            self._api = CongressApiClient()
        return self._api

    @property
    def llm(self) -> LLMService:
        if self._llm is None:
            self._llm = LLMService()
        return self._llm

    def _store_summary(self, bill_id: str, summary: str):
        if not summary:
            return
        session = get_session()
        try:
            bill = session.get(Bill, bill_id)
            if bill is None:
                return
            bill.summary = summary
            bill.updated_at = datetime.utcnow()
            session.commit()
            log.debug("Updated bill summary", bill_id=bill_id)
        except Exception as e:
            session.rollback()
            log.warning("Could not update bill summary", bill_id=bill_id, error=str(e))
        finally:
            session.close()

    def get_bill_summaries(self, bill_id: str) -> list[dict]:
        """Official summaries for a bill; the first one is written to the bill row."""
        try:
            congress, bill_type, number = parse_bill_id(bill_id)

            def fetch():
                data = self.api.get_bill_summaries(congress, bill_type, number) or {}
                summaries = data.get("summaries") or []
                if isinstance(summaries, dict):
                    summaries = [summaries]
                log.info("Fetched bill summaries", bill_id=bill_id, count=len(summaries))
                if summaries:
                    self._store_summary(bill_id, summaries[0].get("text"))
                return summaries

            return self.cache.get_or_fetch(f"bill-summaries-{bill_id}", fetch)
        except LegisTrackError as e:
            log.error("Failed to fetch bill summaries", bill_id=bill_id, error=str(e))
            return []

    def generate_enhanced_summary(self, bill_id: str) -> dict:
        """Write an AI summary of the bill's full text into ``bills.summary``."""
        try:
            bill = _load_bill(bill_id)
            if bill is None:
                raise NotFoundError(f"Bill not found: {bill_id}")
            self.llm.generate_full_text_summary(bill)
        except LegisTrackError as e:
            log.error("Failed to generate enhanced summary", bill_id=bill_id, error=str(e))
            return {"success": False, "message": f"Error generating enhanced summary: {e}"}

        return {"success": True, "message": f"Successfully generated enhanced summary for bill {bill_id}"}

    def update_summaries_for_bills(self, bill_ids: list[str]) -> SyncResult:
        updated = 0
        batch_size = self.config.summary_batch_size

        for start in range(0, len(bill_ids), batch_size):
            for bill_id in bill_ids[start:start + batch_size]:
                if self.get_bill_summaries(bill_id):
                    updated += 1
                elif self.generate_enhanced_summary(bill_id)["success"]:
                    updated += 1

            if start + batch_size < len(bill_ids):
                time.sleep(self.config.summary_batch_delay)

        return SyncResult(True, updated, f"Updated summaries for {updated} of {len(bill_ids)} bills")

    def update_missing_summaries(self, limit: int = 20) -> SyncResult:
        session = get_session()
        try:
            bill_ids = [
                row.id for row in
                session.query(Bill.id).filter(Bill.summary.is_(None)).limit(limit).all()
            ]
        finally:
            session.close()

        if not bill_ids:
            return SyncResult(True, 0, "No bills found without summaries")

        log.info("Bills missing summaries", count=len(bill_ids))
        return self.update_summaries_for_bills(bill_ids)

    def get_latest_summary(self, bill_id: str) -> Optional[str]:
        summaries = self.get_bill_summaries(bill_id)
        if summaries:
            return summaries[0].get("text")

        bill = _load_bill(bill_id)
        if bill is None:
            return None
        try:
            return self.llm.generate_full_text_summary(bill)
        except LegisTrackError as e:
            log.warning("Could not generate summary", bill_id=bill_id, error=str(e))
            return None

    def clear_cache(self):
        self.cache.clear()
