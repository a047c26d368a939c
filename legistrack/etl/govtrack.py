"""Cached client for the GovTrack v2 API (roll call votes and voters)."""

import json
from typing import Any, Optional

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from legistrack.cache import TTLCache
from legistrack.config import get_config
from legistrack.exceptions import UpstreamAPIError

log = structlog.get_logger()

# Congress.gov bill type -> GovTrack bill_type
GOVTRACK_BILL_TYPES = {
    "hr": "house_bill",
    "s": "senate_bill",
    "hres": "house_resolution",
    "sres": "senate_resolution",
    "hjres": "house_joint_resolution",
    "sjres": "senate_joint_resolution",
    "hconres": "house_concurrent_resolution",
    "sconres": "senate_concurrent_resolution",
}

BILL_VOTES_LIMIT = 100
VOTE_VOTERS_LIMIT = 500
MEMBER_VOTES_LIMIT = 100


def govtrack_chamber(value: Optional[str]) -> str:
    return "house" if (value or "").lower() in ("h", "house") else "senate"


def transform_vote(vote: dict) -> dict:
    """Flatten a GovTrack vote object."""
    plus = vote.get("total_plus") or 0
    minus = vote.get("total_minus") or 0
    other = vote.get("total_other") or 0
    chamber = govtrack_chamber(vote.get("chamber"))
    return {
        "id": vote.get("id"),
        "govtrack_vote_id": vote.get("id"),
        "congress": vote.get("congress"),
        "chamber": chamber,
        "session": vote.get("session"),
        "number": vote.get("number"),
        "question": vote.get("question") or vote.get("category") or "Unknown question",
        "created": vote.get("created"),
        "result": vote.get("result") or "Unknown",
        "total_votes": plus + minus + other,
        "total_plus": plus,
        "total_minus": minus,
        "total_other": other,
        "govtrack_url": vote.get("link") or (
            f"https://www.govtrack.us/congress/votes/{vote.get('congress')}/{chamber[0]}/{vote.get('number')}"
        ),
    }


def transform_voter(voter: dict) -> dict:
    """How one member voted, from a GovTrack vote_voter object."""
    person = voter.get("person") if isinstance(voter.get("person"), dict) else {}
    role = voter.get("person_role") if isinstance(voter.get("person_role"), dict) else {}
    option = voter.get("option") if isinstance(voter.get("option"), dict) else {}
    return {
        "govtrack_id": person.get("id"),
        "bioguide_id": person.get("bioguideid"),
        "name": person.get("name"),
        "party": role.get("party"),
        "state": role.get("state"),
        "district": role.get("district"),
        "option": option.get("value") or option.get("key"),
    }


class GovTrackClient:
    """Fetches votes and vote voters from GovTrack. No API key is required."""

    def __init__(self, client: Optional[httpx.Client] = None):
        self.config = get_config()
        self.client = client or httpx.Client(
            timeout=30.0,
            headers={"User-Agent": "LegisTrack/1.0", "Accept": "application/json"},
        )
        self.cache = TTLCache(self.config.govtrack_cache_ttl, name="govtrack")

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _get(self, endpoint: str, params: dict) -> Optional[dict]:
        log.debug("GovTrack request", endpoint=endpoint, params=params)
        response = self.client.get(f"{self.config.govtrack_api_base}{endpoint}", params=params)
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            log.error("GovTrack API error", status=response.status_code, endpoint=endpoint)
            raise UpstreamAPIError(
                f"GovTrack API error {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
            )
        return response.json()

    def request(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> Optional[dict]:
        """GET an endpoint, serving repeated requests from the cache."""
        params = {k: v for k, v in (params or {}).items() if v is not None}
        cache_key = f"{endpoint}-{json.dumps(params, sort_keys=True, default=str)}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        try:
            data = self._get(endpoint, params)
        except httpx.HTTPError as e:
            log.error("GovTrack unreachable", endpoint=endpoint, error=str(e))
            raise UpstreamAPIError(f"Could not reach GovTrack: {e}") from e
        except ValueError as e:
            log.error("GovTrack returned invalid JSON", endpoint=endpoint, error=str(e))
            raise UpstreamAPIError(f"Invalid response from GovTrack: {e}") from e
        if data is not None:
            self.cache.set(cache_key, data)
        return data

    def get_bill_votes(self, congress: int, bill_type: str, number: int) -> dict:
        """Votes related to a bill, newest first. Returns the raw ``{"meta", "objects"}`` page."""
        bill_type = bill_type.lower()
        return self.request("/vote", {
            "related_bill__congress": congress,
            "related_bill__bill_type": GOVTRACK_BILL_TYPES.get(bill_type, bill_type),
            "related_bill__number": number,
            "limit": BILL_VOTES_LIMIT,
            "sort": "-created",
        }) or {}

    def get_vote(self, vote_id: int) -> Optional[dict]:
        return self.request(f"/vote/{vote_id}")

    def get_vote_voters(self, vote_id: int) -> list[dict]:
        data = self.request("/vote_voter", {"vote": vote_id, "limit": VOTE_VOTERS_LIMIT}) or {}
        return data.get("objects") or []

    def find_person_id(self, bioguide_id: str) -> Optional[int]:
        """GovTrack person id for a bioguide id."""
        data = self.request("/person", {"bioguideid": bioguide_id}) or {}
        people = data.get("objects") or []
        return people[0].get("id") if people else None

    def get_member_votes(self, person_id: int, congress: Optional[int] = None,
                         limit: int = MEMBER_VOTES_LIMIT) -> dict:
        return self.request("/vote_voter", {
            "person": person_id,
            "vote__congress": congress,
            "limit": limit,
            "sort": "-created",
        }) or {}
