"""Bill listing, search, trending and subject lookups."""

import json
import math
from dataclasses import dataclass
from datetime import date
from typing import Literal, Optional

import structlog
from pydantic import BaseModel, Field
from sqlalchemy import or_

from legistrack.cache import TTLCache
from legistrack.config import get_config
from legistrack.etl.bills import BillFetcher, bill_to_model, parse_bill_id, slugify
from legistrack.exceptions import LegisTrackError
from legistrack.models.database import Bill, BillSubject, get_session
from legistrack.summarizers.llm import load_comprehensive_analysis

log = structlog.get_logger()

MAX_PAGE_SIZE = 50
SUFFICIENT_DB_RESULTS = 10
DEFAULT_CONGRESS = 118


class BillSearchParams(BaseModel):
    """Filters, sort and paging for bill listings."""

    query: Optional[str] = None
    congress: Optional[int] = None
    bill_type: Optional[str] = None
    status: Optional[str] = None
    sponsor_state: Optional[str] = None
    sponsor_party: Optional[str] = None
    subjects: list[str] = Field(default_factory=list)
    introduced_after: Optional[date] = None
    introduced_before: Optional[date] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1)
    sort: Literal["introduced_date", "updated_at", "title"] = "introduced_date"
    order: Literal["asc", "desc"] = "desc"


@dataclass
class Page:
    """One page of results with pagination info."""

    data: list
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self) -> dict:
        return {
            "data": self.data,
            "pagination": {"page": self.page, "limit": self.limit, "total": self.total, "pages": self.pages},
        }


def split_subject_filters(subjects: list[str]) -> tuple[list[str], list[str]]:
    """Separate ``policy-`` prefixed policy area slugs from legislative subject names."""
    policy_areas = [s[len("policy-"):] for s in subjects if s.startswith("policy-")]
    legislative = [s for s in subjects if not s.startswith("policy-")]
    return policy_areas, legislative


def _matches_policy_area(bill: Bill, policy_slugs: list[str]) -> bool:
    if not bill.policy_area:
        return False
    return slugify(bill.policy_area) in policy_slugs or bill.policy_area in policy_slugs


def _sponsor_matches(bill: Bill, key: str, value: str) -> bool:
    return any((s.get(key) or "").upper() == value.upper() for s in (bill.sponsors or []))


def _json_filters(params: BillSearchParams):
    """Predicates over JSON columns, applied after the SQL query."""
    policy_slugs, legislative = split_subject_filters(params.subjects)
    checks = []
    if params.sponsor_state:
        checks.append(lambda b: _sponsor_matches(b, "state", params.sponsor_state))
    if params.sponsor_party:
        checks.append(lambda b: _sponsor_matches(b, "party", params.sponsor_party))
    if policy_slugs:
        checks.append(lambda b: _matches_policy_area(b, policy_slugs))
    if legislative:
        wanted = set(legislative)
        checks.append(lambda b: bool(wanted & set(b.subjects or [])))
    return checks


def with_analysis(bill: Bill) -> dict:
    """Bill as a dict, plus its comprehensive analysis when one is stored."""
    data = bill.to_dict()
    analysis = load_comprehensive_analysis(bill.id)
    if analysis:
        data["comprehensive_analysis"] = analysis
    return data


class BillService:
    """Reads bills from the database, falling back to Congress.gov."""

    def __init__(self, fetcher: Optional[BillFetcher] = None):
        self.config = get_config()
        self._fetcher = fetcher
        self.cache = TTLCache(self.config.bill_query_cache_ttl, name="bill_queries")
        self.subjects_cache = TTLCache(self.config.subjects_cache_ttl, name="subjects")

    @property
    def fetcher(self) -> BillFetcher:
        if self._fetcher is None:
            self._fetcher = BillFetcher()
        return self._fetcher

    def _query_bills(self, params: BillSearchParams) -> Page:
        limit = min(params.limit, MAX_PAGE_SIZE)
        offset = (params.page - 1) * limit

        session = get_session()
        try:
            query = session.query(Bill)
            if params.congress:
                query = query.filter(Bill.congress == params.congress)
            if params.bill_type:
                query = query.filter(Bill.bill_type == params.bill_type.lower())
            if params.status:
                query = query.filter(Bill.status.ilike(f"%{params.status}%"))
            if params.introduced_after:
                query = query.filter(Bill.introduced_date >= params.introduced_after)
            if params.introduced_before:
                query = query.filter(Bill.introduced_date <= params.introduced_before)
            if params.query:
                pattern = f"%{params.query}%"
                query = query.filter(or_(
                    Bill.title.ilike(pattern),
                    Bill.short_title.ilike(pattern),
                    Bill.summary.ilike(pattern),
                ))

            column = getattr(Bill, params.sort)
            query = query.order_by(column.asc() if params.order == "asc" else column.desc())

            checks = _json_filters(params)
            if checks:
                matched = [b for b in query.all() if all(check(b) for check in checks)]
                total = len(matched)
                bills = matched[offset:offset + limit]
            else:
                total = query.count()
                bills = query.offset(offset).limit(limit).all()
        finally:
            session.close()

        return Page([with_analysis(b) for b in bills], params.page, limit, total)

    def get_bills(self, params: Optional[BillSearchParams] = None) -> Page:
        """List bills matching the filters, cached per parameter set."""
        params = params or BillSearchParams()
        cache_key = f"query-{json.dumps(params.model_dump(mode='json'), sort_keys=True)}"
        return self.cache.get_or_fetch(cache_key, lambda: self._query_bills(params))

    def get_bill(self, bill_id: str) -> Optional[Bill]:
        """Stored bill, or fetch it from Congress.gov and store it."""
        parse_bill_id(bill_id)

        session = get_session()
        try:
            bill = session.get(Bill, bill_id)
        finally:
            session.close()
        if bill is not None:
            return bill

        return self.fetcher.ensure_bill_in_database(bill_id)

    def _store_search_results(self, bills: list[Bill]):
        """Insert bills that are not stored yet; existing rows are left untouched."""
        session = get_session()
        try:
            for bill in bills:
                if session.get(Bill, bill.id) is None:
                    session.add(bill)
            session.commit()
        except Exception as e:
            session.rollback()
            log.warning("Could not store search results", error=str(e))
        finally:
            session.close()

    def search_bills(self, query: str, congress: Optional[int] = None, bill_type: Optional[str] = None,
                     subjects: Optional[list[str]] = None, page: int = 1, limit: int = 20) -> dict:
        """Search stored bills, going to Congress.gov when the database has too few.

        Returns:
            Page dict plus ``from_api`` telling where the results came from
        """
        params = BillSearchParams(
            query=query, congress=congress, bill_type=bill_type, subjects=subjects or [],
            page=page, limit=limit, sort="updated_at",
        )
        db_results = self._query_bills(params)
        if len(db_results.data) >= SUFFICIENT_DB_RESULTS and not congress:
            log.info("Using database search results", query=query, count=len(db_results.data))
            return {**db_results.to_dict(), "from_api": False}

        limit = min(limit, MAX_PAGE_SIZE)
        api_params = {
            "congress": congress or DEFAULT_CONGRESS,
            "limit": limit,
            "offset": (page - 1) * limit,
            "sort": "updateDate+desc",
        }
        if bill_type:
            api_params["bill-type"] = bill_type

        try:
            response = self.fetcher.api.search_bills(query, **api_params)
        except LegisTrackError as e:
            log.warning("API search failed, using database results", query=query, error=str(e))
            return {**db_results.to_dict(), "from_api": False}

        bills = [bill_to_model(b) for b in response.get("bills") or []]
        data = [b.to_dict() for b in bills]
        if bills:
            self._store_search_results(bills)

        total = (response.get("pagination") or {}).get("count") or len(bills)
        log.info("API search results", query=query, count=len(bills), total=total)
        page_result = Page(data, page, limit, total)
        return {**page_result.to_dict(), "from_api": True}

    def get_trending_bills(self, limit: int = 10) -> list[dict]:
        """Most recently updated bills."""
        def fetch():
            session = get_session()
            try:
                bills = session.query(Bill).order_by(Bill.updated_at.desc()).limit(limit).all()
            finally:
                session.close()
            return [with_analysis(b) for b in bills]

        return self.cache.get_or_fetch(f"trending-{limit}", fetch)

    def _subjects_from_bills(self) -> list[dict]:
        session = get_session()
        try:
            bills = session.query(Bill).order_by(Bill.updated_at.desc()).limit(100).all()
        finally:
            session.close()

        names = sorted({s for b in bills for s in (b.subjects or []) if s})
        policy_areas = sorted({b.policy_area for b in bills if b.policy_area})
        subjects = [{"id": slugify(n), "name": n, "type": "legislative", "count": 0} for n in names]
        subjects += [{"id": f"policy-{slugify(n)}", "name": n, "type": "policy", "count": 0} for n in policy_areas]

        if subjects:
            session = get_session()
            try:
                for subject in subjects:
                    session.merge(BillSubject(**subject))
                session.commit()
            except Exception as e:
                session.rollback()
                log.warning("Could not store subjects", error=str(e))
            finally:
                session.close()
        return subjects

    def get_all_subjects(self) -> list[dict]:
        """Subjects and policy areas, derived from stored bills when the table is empty."""
        def fetch():
            session = get_session()
            try:
                rows = session.query(BillSubject).order_by(BillSubject.name).all()
            finally:
                session.close()
            if rows:
                log.info("Loaded subjects from database", count=len(rows))
                return [r.to_dict() for r in rows]
            return self._subjects_from_bills()

        return self.subjects_cache.get_or_fetch("all-subjects", fetch)

    def get_bills_by_user_interests(self, interests: list[str], limit: int = 10,
                                    require_all: bool = False) -> list[dict]:
        """Bills whose policy area or subjects mention the user's interests."""
        if not interests:
            return self.get_trending_bills(limit)

        lowered = [i.lower() for i in interests]

        def matches(bill: Bill, interest: str) -> bool:
            texts = [bill.policy_area or ""] + list(bill.subjects or [])
            return any(interest in t.lower() for t in texts)

        session = get_session()
        try:
            bills = session.query(Bill).order_by(Bill.updated_at.desc()).all()
        finally:
            session.close()

        combine = all if require_all else any
        matched = [b for b in bills if combine(matches(b, i) for i in lowered)][:limit]
        if not matched:
            log.info("No bills match interests, using trending", interests=interests)
            return self.get_trending_bills(limit)
        return [with_analysis(b) for b in matched]

    def clear_cache(self):
        self.cache.clear()
        self.subjects_cache.clear()
