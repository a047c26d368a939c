"""ETL module for syncing Congressional bills from Congress.gov API."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog

from legistrack.etl.congress_api import CongressApiClient
from legistrack.exceptions import InvalidBillIdError, LegisTrackError
from legistrack.models.database import Bill, BillSubject, get_session

log = structlog.get_logger()


@dataclass
class SyncResult:
    """Outcome of a batch operation."""

    success: bool
    count: int
    message: str
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"success": self.success, "count": self.count, "message": self.message}


def parse_bill_id(bill_id: str) -> tuple[int, str, int]:
    """Split ``118-hr-1234`` into ``(118, "hr", 1234)``."""
    parts = (bill_id or "").split("-")
    if len(parts) != 3 or not all(parts):
        raise InvalidBillIdError(f"Invalid bill ID format: {bill_id!r}")
    congress, bill_type, number = parts
    if not congress.isdigit() or not number.isdigit():
        raise InvalidBillIdError(f"Invalid bill ID format: {bill_id!r}")
    return int(congress), bill_type.lower(), int(number)


def make_bill_id(congress: int, bill_type: str, number: int) -> str:
    return f"{congress}-{bill_type.lower()}-{number}"


def slugify(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


def _as_list(value) -> list:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _parse_date(value: Optional[str]):
    if not value:
        return None
    try:
        return datetime.strptime(value[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def bill_to_model(bill_data: dict) -> Bill:
    """Convert Congress.gov bill data to a Bill model."""
    congress = int(bill_data.get("congress") or 118)
    bill_type = (bill_data.get("type") or "").lower()
    number = int(bill_data.get("number") or 0)

    latest = bill_data.get("latestAction") or {}
    subjects_data = bill_data.get("subjects") if isinstance(bill_data.get("subjects"), dict) else {}
    policy = bill_data.get("policyArea") or subjects_data.get("policyArea") or {}

    subjects = [
        s["name"] for s in _as_list(subjects_data.get("legislativeSubjects"))
        if isinstance(s, dict) and s.get("name")
    ]

    sponsors = [
        {
            "bioguide_id": s.get("bioguideId"),
            "full_name": s.get("fullName"),
            "party": s.get("party"),
            "state": s.get("state"),
            "district": s.get("district"),
        }
        for s in _as_list(bill_data.get("sponsors"))
    ]

    committees_data = bill_data.get("committees")
    committees = [
        {"name": c.get("name"), "chamber": c.get("chamber"), "url": c.get("url")}
        for c in (committees_data if isinstance(committees_data, list) else [])
    ]

    cosponsors = bill_data.get("cosponsors")
    if isinstance(cosponsors, dict):
        cosponsors_count = cosponsors.get("count") or 0
    else:
        cosponsors_count = len(_as_list(cosponsors))

    summaries = bill_data.get("summaries")
    summary = None
    if isinstance(summaries, list) and summaries:
        summary = summaries[0].get("text")

    return Bill(
        id=make_bill_id(congress, bill_type, number),
        congress=congress,
        bill_type=bill_type,
        number=number,
        title=bill_data.get("title") or "",
        short_title=bill_data.get("shortTitle"),
        introduced_date=_parse_date(bill_data.get("introducedDate")),
        status=latest.get("text") or "Unknown",
        latest_action={
            "date": latest.get("actionDate"),
            "text": latest.get("text"),
            "actionCode": latest.get("actionCode"),
        },
        summary=summary,
        sponsors=sponsors,
        cosponsors_count=cosponsors_count,
        committees=committees,
        subjects=subjects,
        policy_area=policy.get("name") if isinstance(policy, dict) else None,
        congress_url=bill_data.get("url"),
    )


# Columns refreshed from the API on every sync; AI-generated columns are never overwritten
_SYNCED_COLUMNS = (
    "title", "short_title", "status", "introduced_date", "latest_action", "sponsors",
    "cosponsors_count", "committees", "congress_url",
)


class BillFetcher:
    """Fetches bills from Congress.gov and stores them."""

    def __init__(self, api: Optional[CongressApiClient] = None):
        self.api = api or CongressApiClient()

    def close(self):
        self.api.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def fetch_bill(self, bill_id: str) -> Optional[Bill]:
        """Fetch a single bill with details from the API, without saving it."""
        congress, bill_type, number = parse_bill_id(bill_id)
        details = self.api.get_bill(congress, bill_type, number)
        if not details:
            log.warning("Bill not found in Congress API", bill_id=bill_id)
            return None
        return bill_to_model(details)

    def save_bills(self, bills: list[Bill]) -> int:
        """Save bills to database, updating existing records."""
        session = get_session()
        saved_count = 0
        now = datetime.utcnow()

        try:
            for bill in bills:
                existing = session.get(Bill, bill.id)

                if existing:
                    for column in _SYNCED_COLUMNS:
                        value = getattr(bill, column)
                        if value is not None:
                            setattr(existing, column, value)
                    if bill.subjects:
                        existing.subjects = bill.subjects
                    if bill.policy_area:
                        existing.policy_area = bill.policy_area
                    if bill.summary and not existing.summary:
                        existing.summary = bill.summary
                    existing.last_synced = now
                    log.debug("Updated bill", bill_id=bill.id)
                else:
                    bill.last_synced = now
                    session.add(bill)
                    log.debug("Added bill", bill_id=bill.id)
                saved_count += 1

            session.commit()
            log.info("Bills saved", count=saved_count, total=len(bills))

        except Exception as e:
            session.rollback()
            log.error("Failed to save bills", error=str(e))
            raise
        finally:
            session.close()

        return saved_count

    def sync_bills(self, congress: Optional[int] = None, limit: int = 50, offset: int = 0) -> SyncResult:
        """Sync the most recently updated bills with full details."""
        try:
            data = self.api.get_bills(congress=congress, limit=limit, offset=offset)
        except LegisTrackError as e:
            log.error("Failed to list bills", error=str(e))
            return SyncResult(False, 0, f"Error syncing bills: {e}")

        bill_list = data.get("bills") or []
        log.info("Fetched bill list", count=len(bill_list))

        bills = []
        errors = []
        for bill_data in bill_list:
            details = None
            try:
                details = self.api.get_bill(
                    int(bill_data.get("congress") or congress or 118),
                    bill_data.get("type", "hr"),
                    int(bill_data.get("number", 0)),
                )
            except LegisTrackError as e:
                errors.append(str(e))
                log.warning("Failed to fetch bill details", error=str(e))
            bills.append(bill_to_model(details or bill_data))

        if not bills:
            return SyncResult(True, 0, "No bills returned from Congress API", errors)

        count = self.save_bills(bills)
        return SyncResult(True, count, f"Synced {count} bills", errors)

    def sync_bill(self, bill_id: str) -> Optional[Bill]:
        bill = self.fetch_bill(bill_id)
        if bill is None:
            return None
        self.save_bills([bill])
        return bill

    def sync_multiple_bills(self, bill_ids: list[str]) -> SyncResult:
        count = 0
        errors = []
        for bill_id in bill_ids:
            try:
                if self.sync_bill(bill_id):
                    count += 1
            except LegisTrackError as e:
                errors.append(f"{bill_id}: {e}")
                log.warning("Failed to sync bill", bill_id=bill_id, error=str(e))
        return SyncResult(True, count, f"Synced {count} of {len(bill_ids)} bills", errors)

    def ensure_bill_in_database(self, bill_id: str) -> Optional[Bill]:
        """Return the stored bill, fetching and inserting it if missing."""
        parse_bill_id(bill_id)

        session = get_session()
        try:
            existing = session.get(Bill, bill_id)
        finally:
            session.close()
        if existing:
            return existing

        log.info("Bill not in database, fetching", bill_id=bill_id)
        bill = self.fetch_bill(bill_id)
        if bill is None:
            return None
        self.save_bills([bill])
        return bill

    def fetch_subjects(self, bill_id: str) -> list[dict]:
        """Fetch legislative subjects and policy area for a bill."""
        congress, bill_type, number = parse_bill_id(bill_id)
        data = self.api.get_bill_subjects(congress, bill_type, number)
        subjects_data = (data or {}).get("subjects") or {}

        subjects = []
        for subject in _as_list(subjects_data.get("legislativeSubjects")):
            if isinstance(subject, dict) and subject.get("name"):
                subjects.append({
                    "id": slugify(subject["name"]),
                    "name": subject["name"],
                    "type": "legislative",
                })

        policy = subjects_data.get("policyArea") or {}
        if policy.get("name"):
            subjects.append({
                "id": f"policy-{slugify(policy['name'])}",
                "name": policy["name"],
                "type": "policy",
            })
        return subjects

    def update_bill_subjects(self, bill_id: str) -> list[dict]:
        """Fetch subjects for a bill and store them on the bill and in bill_subjects."""
        subjects = self.fetch_subjects(bill_id)
        if not subjects:
            return []

        session = get_session()
        try:
            bill = session.get(Bill, bill_id)
            known = set()
            if bill:
                known = set(bill.subjects or []) | {bill.policy_area}
                bill.subjects = [s["name"] for s in subjects if s["type"] == "legislative"]
                policy = next((s["name"] for s in subjects if s["type"] == "policy"), None)
                if policy:
                    bill.policy_area = policy

            for subject in subjects:
                row = session.get(BillSubject, subject["id"])
                if row is None:
                    session.add(BillSubject(count=1, **subject))
                elif bill is not None and subject["name"] not in known:
                    # count bills, not syncs
                    row.count = (row.count or 0) + 1

            session.commit()
        except Exception as e:
            session.rollback()
            log.error("Failed to update bill subjects", bill_id=bill_id, error=str(e))
            raise
        finally:
            session.close()

        return subjects

    def update_policy_areas(self, limit: int = 50) -> SyncResult:
        """Fill in policy areas for bills that lack one."""
        session = get_session()
        try:
            bill_ids = [
                row.id for row in
                session.query(Bill.id).filter(Bill.policy_area.is_(None)).limit(limit).all()
            ]
        finally:
            session.close()

        count = 0
        for bill_id in bill_ids:
            try:
                subjects = self.update_bill_subjects(bill_id)
                if any(s["type"] == "policy" for s in subjects):
                    count += 1
            except LegisTrackError as e:
                log.warning("Failed to update policy area", bill_id=bill_id, error=str(e))

        return SyncResult(True, count, f"Updated policy areas for {count} of {len(bill_ids)} bills")
