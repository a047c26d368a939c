"""Fetches bill text versions and stores full text on bills."""

import time
from datetime import datetime
from typing import Optional

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from legistrack.cache import TTLCache
from legistrack.config import get_config
from legistrack.etl.bills import SyncResult, parse_bill_id
from legistrack.etl.congress_api import CongressApiClient
from legistrack.exceptions import LegisTrackError, UpstreamAPIError
from legistrack.models.database import Bill, get_session

log = structlog.get_logger()


def pick_text_url(formats: list[dict], preferred: str = "Formatted XML") -> Optional[str]:
    """Choose the preferred format, then PDF, then whatever is listed first."""
    if not formats:
        return None
    for wanted in (preferred, "PDF"):
        for fmt in formats:
            if (fmt.get("type") or "").upper() == wanted.upper() and fmt.get("url"):
                return fmt["url"]
    return formats[0].get("url")


class FullTextFetcher:
    """Retrieves bill text from Congress.gov."""

    def __init__(self, api: Optional[CongressApiClient] = None, client: Optional[httpx.Client] = None):
        self.config = get_config()
        self.api = api or CongressApiClient()
        self.client = client or httpx.Client(timeout=30.0, follow_redirects=True)
        self.cache = TTLCache(self.config.full_text_cache_ttl, name="bill_text")

    def close(self):
        self.client.close()
        self.api.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def get_text_versions(self, bill_id: str) -> list[dict]:
        congress, bill_type, number = parse_bill_id(bill_id)

        def fetch():
            data = self.api.get_bill_text(congress, bill_type, number) or {}
            versions = data.get("textVersions") or []
            if isinstance(versions, dict):
                versions = [versions]
            log.info("Fetched text versions", bill_id=bill_id, count=len(versions))
            return versions

        return self.cache.get_or_fetch(f"text-versions-{bill_id}", fetch)

    def get_latest_text_version(self, bill_id: str) -> Optional[dict]:
        versions = self.get_text_versions(bill_id)
        return versions[0] if versions else None

    def get_full_text_url(self, bill_id: str, preferred: str = "Formatted XML") -> Optional[str]:
        latest = self.get_latest_text_version(bill_id)
        if not latest:
            return None
        return pick_text_url(latest.get("formats") or [], preferred)

    def get_available_formats(self, bill_id: str) -> list[dict]:
        latest = self.get_latest_text_version(bill_id)
        return (latest or {}).get("formats") or []

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _get_text(self, url: str) -> str:
        response = self.client.get(url)
        if response.status_code >= 400:
            raise UpstreamAPIError(
                f"Failed to fetch bill text: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        return response.text

    def _download(self, url: str) -> str:
        try:
            return self._get_text(url)
        except httpx.HTTPError as e:
            log.error("Bill text download failed", url=url, error=str(e))
            raise UpstreamAPIError(f"Failed to fetch bill text: {e}") from e

    def get_text_content(self, bill_id: str) -> Optional[str]:
        """Download the formatted text for a bill."""
        url = self.get_full_text_url(bill_id, "Formatted XML")
        if not url:
            log.info("No text URL for bill", bill_id=bill_id)
            return None

        text = self._download(url)
        if not text or not text.strip():
            log.warning("Empty text content", bill_id=bill_id)
            return None

        log.info("Fetched bill text", bill_id=bill_id, chars=len(text))
        return text

    def _store(self, bill_id: str, **columns):
        session = get_session()
        try:
            bill = session.get(Bill, bill_id)
            if bill is None:
                return
            for name, value in columns.items():
                setattr(bill, name, value)
            bill.updated_at = datetime.utcnow()
            session.commit()
        except Exception as e:
            session.rollback()
            log.error("Failed to store bill text", bill_id=bill_id, error=str(e))
            raise
        finally:
            session.close()

    def update_full_text_for_bills(self, bill_ids: list[str]) -> SyncResult:
        """Store text URL and content for each bill, in paced batches."""
        updated = 0
        batch_size = self.config.full_text_batch_size

        for start in range(0, len(bill_ids), batch_size):
            for bill_id in bill_ids[start:start + batch_size]:
                try:
                    url = self.get_full_text_url(bill_id)
                    if not url:
                        continue
                    self._store(bill_id, full_text_url=url)
                    content = self.get_text_content(bill_id)
                    if content:
                        self._store(bill_id, full_text_content=content)
                    updated += 1
                except LegisTrackError as e:
                    log.warning("Could not update full text", bill_id=bill_id, error=str(e))

            if start + batch_size < len(bill_ids):
                time.sleep(self.config.full_text_batch_delay)

        return SyncResult(True, updated, f"Updated full text for {updated} of {len(bill_ids)} bills")

    def update_missing_full_text(self, limit: int = 20) -> SyncResult:
        session = get_session()
        try:
            bill_ids = [
                row.id for row in
                session.query(Bill.id).filter(Bill.full_text_content.is_(None)).limit(limit).all()
            ]
        finally:
            session.close()

        if not bill_ids:
            return SyncResult(True, 0, "No bills found without full text content")

        log.info("Bills missing full text", count=len(bill_ids))
        return self.update_full_text_for_bills(bill_ids)
