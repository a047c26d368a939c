"""Rate-limited, cached client for the Congress.gov v3 API."""

import json
import time
from typing import Any, Optional

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from legistrack.cache import TTLCache
from legistrack.config import get_config
from legistrack.exceptions import ConfigurationError, UpstreamAPIError

log = structlog.get_logger()

_STATUS_MESSAGES = {
    401: "Invalid Congress API key. Please verify CONGRESS_API_KEY is correct.",
    403: "Congress API key not activated. Check your email for activation instructions.",
    429: "Rate limit exceeded. Please try again in a few minutes.",
}

MEMBER_PAGE_SIZE = 250
MEMBER_SAFETY_LIMIT = 10000
MEMBER_MAX_CONSECUTIVE_ERRORS = 2


class CongressApiClient:
    """Fetches bills, bill sub-resources and members from Congress.gov."""

    def __init__(self, client: Optional[httpx.Client] = None, min_request_interval: Optional[float] = None):
        self.config = get_config()
        self.client = client or httpx.Client(
            timeout=15.0,
            headers={"User-Agent": "LegisTrack/1.0", "Accept": "application/json"},
        )
        self.min_request_interval = (
            self.config.congress_min_request_interval
            if min_request_interval is None else min_request_interval
        )
        self.cache = TTLCache(self.config.congress_cache_ttl, name="congress_api")
        self._last_request = 0.0

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def _throttle(self):
        elapsed = time.monotonic() - self._last_request
        if elapsed < self.min_request_interval:
            time.sleep(self.min_request_interval - elapsed)
        self._last_request = time.monotonic()

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _get(self, endpoint: str, params: dict) -> Optional[dict]:
        query = {"api_key": self.config.congress_api_key, "format": "json"}
        query.update({k: v for k, v in params.items() if v is not None})

        self._throttle()
        log.debug("Congress API request", endpoint=endpoint)
        response = self.client.get(f"{self.config.congress_api_base}{endpoint}", params=query)

        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            if response.status_code >= 500:
                message = "Congress.gov API is temporarily unavailable. Please try again later."
            else:
                message = _STATUS_MESSAGES.get(
                    response.status_code,
                    f"Congress API error {response.status_code}: {response.reason_phrase}",
                )
            log.error("Congress API error", status=response.status_code, endpoint=endpoint)
            raise UpstreamAPIError(message, status_code=response.status_code)

        return response.json()

    def request(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> Optional[dict]:
        """GET an endpoint, serving repeated requests from the cache."""
        if not self.config.congress_api_key:
            raise ConfigurationError("Congress.gov API key not configured")

        params = params or {}
        cache_key = f"{endpoint}-{json.dumps(params, sort_keys=True, default=str)}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            data = self._get(endpoint, params)
        except httpx.HTTPError as e:
            log.error("Congress API unreachable", endpoint=endpoint, error=str(e))
            raise UpstreamAPIError(f"Could not reach Congress.gov: {e}") from e
        except ValueError as e:
            log.error("Congress API returned invalid JSON", endpoint=endpoint, error=str(e))
            raise UpstreamAPIError(f"Invalid response from Congress.gov: {e}") from e
        if data is not None:
            self.cache.set(cache_key, data)
        return data

    def get_bills(self, congress: Optional[int] = None, limit: int = 20, offset: int = 0,
                  sort: str = "updateDate+desc", **params) -> dict:
        endpoint = f"/bill/{congress}" if congress else "/bill"
        return self.request(endpoint, {"limit": limit, "offset": offset, "sort": sort, **params}) or {}

    def search_bills(self, query: str, **params) -> dict:
        return self.request("/bill", {"query": query, **params}) or {}

    def get_bill(self, congress: int, bill_type: str, number: int) -> Optional[dict]:
        data = self.request(f"/bill/{congress}/{bill_type.lower()}/{number}")
        return data.get("bill") if data else None

    def _bill_resource(self, congress: int, bill_type: str, number: int, resource: str) -> Optional[dict]:
        return self.request(f"/bill/{congress}/{bill_type.lower()}/{number}/{resource}")

    def get_bill_actions(self, congress: int, bill_type: str, number: int) -> Optional[dict]:
        return self._bill_resource(congress, bill_type, number, "actions")

    def get_bill_summaries(self, congress: int, bill_type: str, number: int) -> Optional[dict]:
        return self._bill_resource(congress, bill_type, number, "summaries")

    def get_bill_subjects(self, congress: int, bill_type: str, number: int) -> Optional[dict]:
        return self._bill_resource(congress, bill_type, number, "subjects")

    def get_bill_cosponsors(self, congress: int, bill_type: str, number: int) -> Optional[dict]:
        return self._bill_resource(congress, bill_type, number, "cosponsors")

    def get_bill_committees(self, congress: int, bill_type: str, number: int) -> Optional[dict]:
        return self._bill_resource(congress, bill_type, number, "committees")

    def get_bill_text(self, congress: int, bill_type: str, number: int) -> Optional[dict]:
        return self._bill_resource(congress, bill_type, number, "text")

    def get_house_votes(self, congress: int, limit: int = 20, offset: int = 0) -> list[dict]:
        """House roll call votes. Congress.gov has no Senate vote endpoint."""
        data = self.request(f"/house-vote/{congress}", {"limit": limit, "offset": offset}) or {}
        return data.get("houseRollCallVotes") or []

    def get_members(self, current_only: bool = True) -> list[dict]:
        """Page through /member, tolerating a single failed page."""
        members = []
        offset = 0
        consecutive_errors = 0
        extra = {"currentMember": "true"} if current_only else {}

        while consecutive_errors < MEMBER_MAX_CONSECUTIVE_ERRORS:
            try:
                log.info("Fetching members", offset=offset, limit=MEMBER_PAGE_SIZE)
                data = self.request("/member", {"limit": MEMBER_PAGE_SIZE, "offset": offset, **extra})
            except UpstreamAPIError as e:
                consecutive_errors += 1
                log.warning("Failed to fetch member page", offset=offset, error=str(e),
                            attempt=consecutive_errors)
                time.sleep(0.5)
                continue

            consecutive_errors = 0
            page = (data or {}).get("members") or []
            if not page:
                break

            members.extend(page)
            if len(page) < MEMBER_PAGE_SIZE:
                break

            if len(members) >= MEMBER_SAFETY_LIMIT:
                log.warning("Member safety limit reached", count=len(members))
                break
            offset += MEMBER_PAGE_SIZE
            time.sleep(self.min_request_interval)

        log.info("Fetched members", count=len(members))
        return members
