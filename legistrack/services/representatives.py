"""Representative lookup and sync from Congress.gov members."""

from datetime import datetime, timedelta
from typing import Optional

import structlog

from legistrack.cache import TTLCache
from legistrack.config import get_config
from legistrack.etl.bills import SyncResult
from legistrack.etl.congress_api import CongressApiClient
from legistrack.models.database import Chamber, Representative, get_session

log = structlog.get_logger()

STATE_NAMES = {
    "AL": "Alabama", "AK": "Alaska", "AZ": "Arizona", "AR": "Arkansas", "CA": "California",
    "CO": "Colorado", "CT": "Connecticut", "DE": "Delaware", "FL": "Florida", "GA": "Georgia",
    "HI": "Hawaii", "ID": "Idaho", "IL": "Illinois", "IN": "Indiana", "IA": "Iowa",
    "KS": "Kansas", "KY": "Kentucky", "LA": "Louisiana", "ME": "Maine", "MD": "Maryland",
    "MA": "Massachusetts", "MI": "Michigan", "MN": "Minnesota", "MS": "Mississippi", "MO": "Missouri",
    "MT": "Montana", "NE": "Nebraska", "NV": "Nevada", "NH": "New Hampshire", "NJ": "New Jersey",
    "NM": "New Mexico", "NY": "New York", "NC": "North Carolina", "ND": "North Dakota", "OH": "Ohio",
    "OK": "Oklahoma", "OR": "Oregon", "PA": "Pennsylvania", "RI": "Rhode Island", "SC": "South Carolina",
    "SD": "South Dakota", "TN": "Tennessee", "TX": "Texas", "UT": "Utah", "VT": "Vermont",
    "VA": "Virginia", "WA": "Washington", "WV": "West Virginia", "WI": "Wisconsin", "WY": "Wyoming",
    "DC": "District of Columbia", "PR": "Puerto Rico", "GU": "Guam", "VI": "Virgin Islands",
    "AS": "American Samoa", "MP": "Northern Mariana Islands",
}
STATE_ABBREVIATIONS = {name.lower(): abbr for abbr, name in STATE_NAMES.items()}

# Skip the member sync when this many active rows were refreshed recently
RECENT_SYNC_THRESHOLD = 500
RECENT_SYNC_DAYS = 7


def state_variants(state: str) -> list[str]:
    """Both the abbreviation and full name for a state, as stored rows may use either."""
    state = state.strip()
    if len(state) == 2:
        abbr = state.upper()
        return [abbr, STATE_NAMES[abbr]] if abbr in STATE_NAMES else [state]
    abbr = STATE_ABBREVIATIONS.get(state.lower())
    return [state, abbr] if abbr else [state]


def to_state_abbreviation(state: str) -> str:
    if len(state) > 2:
        return STATE_ABBREVIATIONS.get(state.lower(), state)
    return state.upper()


def _party_code(party_name: Optional[str]) -> str:
    if not party_name:
        return "Unknown"
    lowered = party_name.lower()
    if "democrat" in lowered:
        return "D"
    if "republican" in lowered:
        return "R"
    if "independent" in lowered:
        return "I"
    return party_name[0].upper()


def _member_terms(member: dict) -> list[dict]:
    terms = member.get("terms") or {}
    items = terms.get("item") if isinstance(terms, dict) else terms
    if items is None:
        return []
    return items if isinstance(items, list) else [items]


def is_current_member(member: dict, year: Optional[int] = None) -> bool:
    """True when the member's last term is open-ended or ends this year or later."""
    terms = _member_terms(member)
    if not terms:
        return False
    end_year = terms[-1].get("endYear")
    year = year or datetime.utcnow().year
    return not end_year or int(end_year) >= year


def transform_member(member: dict) -> Representative:
    """Convert a Congress.gov member record to a Representative row."""
    terms = _member_terms(member)
    current_term = terms[-1] if terms else {}

    chamber_name = str(current_term.get("chamber") or "").lower()
    chamber = Chamber.SENATE.value if chamber_name == "senate" else Chamber.HOUSE.value

    full_name = member.get("name") or ""
    name_parts = full_name.split(", ")
    if len(name_parts) >= 2:
        last_name, first_name = name_parts[0], name_parts[1]
    else:
        parts = full_name.split(" ")
        first_name, last_name = parts[0], parts[-1]

    district = None
    if chamber == Chamber.HOUSE.value:
        raw_district = member.get("district") or current_term.get("district")
        if raw_district is not None:
            district = int(raw_district)

    state = member.get("state") or current_term.get("stateName") or current_term.get("state") or ""

    return Representative(
        bioguide_id=member.get("bioguideId"),
        full_name=full_name,
        first_name=first_name,
        last_name=last_name,
        party=_party_code(member.get("partyName")),
        state=to_state_abbreviation(state) if state else state,
        district=district,
        chamber=chamber,
        image_url=(member.get("depiction") or {}).get("imageUrl"),
        website=member.get("officialWebsiteUrl") or member.get("url"),
        is_active=True,
    )


class RepresentativeService:
    """Finds members of Congress for a location and keeps the table in sync."""

    def __init__(self, api: Optional[CongressApiClient] = None):
        self.config = get_config()
        self._api = api
        self.cache = TTLCache(self.config.representatives_cache_ttl, name="representatives")

    @property
    def api(self) -> CongressApiClient:
        if self._api is None:
            self._api = CongressApiClient()
        return self._api

    def get_representatives_by_location(self, state: Optional[str], district: Optional[int] = None) -> list[dict]:
        """Senators for the state plus the House member for the district."""
        if not state:
            log.info("No state provided for representative lookup")
            return []

        def fetch():
            session = get_session()
            try:
                reps = session.query(Representative).filter(
                    Representative.state.in_(state_variants(state)),
                    Representative.is_active.is_(True),
                ).all()
            finally:
                session.close()

            senators = [r for r in reps if r.chamber == Chamber.SENATE.value]
            result = [r.to_dict() for r in senators]
            if district:
                house = next(
                    (r for r in reps if r.chamber == Chamber.HOUSE.value and r.district == district), None
                )
                if house:
                    result.append(house.to_dict())

            log.info("Found representatives", state=state, district=district, count=len(result))
            return result

        return self.cache.get_or_fetch(f"reps-{state}-{district or 'all'}", fetch)

    def get_representatives(self, state: Optional[str] = None, chamber: Optional[str] = None,
                            party: Optional[str] = None, limit: Optional[int] = None) -> list[dict]:
        def fetch():
            session = get_session()
            try:
                query = session.query(Representative).filter(Representative.is_active.is_(True))
                if state:
                    query = query.filter(Representative.state.in_(state_variants(state)))
                if chamber:
                    query = query.filter(Representative.chamber == chamber)
                if party:
                    query = query.filter(Representative.party == party)
                query = query.order_by(Representative.last_name)
                if limit:
                    query = query.limit(limit)
                return [r.to_dict() for r in query.all()]
            finally:
                session.close()

        return self.cache.get_or_fetch(f"reps-filter-{state}-{chamber}-{party}-{limit}", fetch)

    def _recently_synced_count(self) -> int:
        cutoff = datetime.utcnow() - timedelta(days=RECENT_SYNC_DAYS)
        session = get_session()
        try:
            return session.query(Representative).filter(
                Representative.is_active.is_(True),
                Representative.updated_at >= cutoff,
            ).count()
        finally:
            session.close()

    def sync_representatives_from_congress(self, force: bool = False) -> SyncResult:
        """Fetch current members from Congress.gov and upsert them."""
        if not force:
            recent = self._recently_synced_count()
            if recent > RECENT_SYNC_THRESHOLD:
                log.info("Representatives recently synced, skipping", count=recent)
                return SyncResult(True, recent, "Using recent database data, skipped API sync")

        members = self.api.get_members(current_only=True)
        current = [m for m in members if is_current_member(m)]
        log.info("Filtered current members", fetched=len(members), current=len(current))

        if not current:
            return SyncResult(True, 0, "No current members returned from Congress API")

        session = get_session()
        now = datetime.utcnow()
        count = 0
        try:
            for member in current:
                rep = transform_member(member)
                if not rep.bioguide_id:
                    continue
                rep.updated_at = now
                session.merge(rep)
                count += 1
            session.commit()
        except Exception as e:
            session.rollback()
            log.error("Failed to store representatives", error=str(e))
            raise
        finally:
            session.close()

        self.clear_cache()
        log.info("Representatives synced", count=count)
        return SyncResult(True, count, f"Synced {count} representatives")

    def clear_cache(self):
        self.cache.clear()
