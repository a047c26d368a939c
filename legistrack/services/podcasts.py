"""Batch generation of podcast overview scripts."""

import time
from typing import Optional

import structlog

from legistrack.config import get_config
from legistrack.etl.bills import SyncResult
from legistrack.exceptions import LegisTrackError
from legistrack.models.database import Bill, ContentStatus, ContentType, GeneratedContent, get_session
from legistrack.summarizers.llm import LLMService

log = structlog.get_logger()


class PodcastOverviewService:
    """Fills ``bills.podcast_overview`` from stored comprehensive analyses."""

    def __init__(self, llm: Optional[LLMService] = None):
        self.config = get_config()
        self._llm = llm

    @property
    def llm(self) -> LLMService:
        if self._llm is None:
            self._llm = LLMService()
        return self._llm

    def _generate_in_batches(self, bills: list[Bill]) -> int:
        generated = 0
        batch_size = self.config.podcast_batch_size

        for start in range(0, len(bills), batch_size):
            for bill in bills[start:start + batch_size]:
                try:
                    self.llm.generate_podcast_overview(bill)
                    generated += 1
                except LegisTrackError as e:
                    log.warning("Could not generate podcast overview", bill_id=bill.id, error=str(e))

            if start + batch_size < len(bills):
                time.sleep(self.config.podcast_batch_delay)

        return generated

    def generate_missing_podcast_overviews(self, limit: int = 10) -> SyncResult:
        """Overviews for bills that have an analysis but no overview yet."""
        session = get_session()
        try:
            bills = session.query(Bill).filter(
                Bill.ai_analysis.isnot(None),
                Bill.podcast_overview.is_(None),
            ).limit(limit).all()
        finally:
            session.close()

        if not bills:
            return SyncResult(True, 0, "No bills found that need podcast overviews")

        log.info("Generating podcast overviews", count=len(bills))
        generated = self._generate_in_batches(bills)
        return SyncResult(True, generated, f"Generated podcast overviews for {generated} of {len(bills)} bills")

    def update_podcast_overviews_for_bills(self, bill_ids: list[str]) -> SyncResult:
        session = get_session()
        try:
            bills = session.query(Bill).filter(Bill.id.in_(bill_ids)).all()
        finally:
            session.close()

        generated = self._generate_in_batches(bills)
        return SyncResult(True, generated, f"Generated podcast overviews for {generated} of {len(bill_ids)} bills")

    def generate_from_generated_content(self, limit: int = 10) -> SyncResult:
        """Overviews for bills with a completed comprehensive analysis row."""
        session = get_session()
        try:
            rows = session.query(GeneratedContent).filter(
                GeneratedContent.content_type == ContentType.ANALYSIS.value,
                GeneratedContent.source_type == "bill",
                GeneratedContent.status == ContentStatus.COMPLETED.value,
            ).limit(limit).all()

            bills = []
            for row in rows:
                bill = session.get(Bill, row.source_id)
                if bill is None:
                    log.warning("Analysis refers to unknown bill", content_id=row.id, bill_id=row.source_id)
                elif not bill.podcast_overview:
                    bills.append(bill)
        finally:
            session.close()

        if not rows:
            return SyncResult(True, 0, "No comprehensive analyses found in generated content")

        generated = self._generate_in_batches(bills)
        return SyncResult(
            True, generated,
            f"Generated podcast overviews for {generated} of {len(rows)} bills from generated content",
        )

    def get_bills_with_podcast_overviews(self, limit: int = 10) -> list[Bill]:
        session = get_session()
        try:
            return session.query(Bill).filter(
                Bill.podcast_overview.isnot(None)
            ).order_by(Bill.updated_at.desc()).limit(limit).all()
        finally:
            session.close()
