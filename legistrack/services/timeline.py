"""Legislative stage, actions, cosponsors and committees for a bill."""

from datetime import datetime
from typing import Optional

import structlog

from legistrack.etl.bills import BillFetcher, parse_bill_id
from legistrack.exceptions import LegisTrackError, NotFoundError
from legistrack.models.database import Bill, get_session

log = structlog.get_logger()

STAGES = [
    ("introduced", "Introduced", "Bill is introduced in the chamber of origin"),
    ("committee", "Committee", "Bill is referred to committee for review, hearings, and markup"),
    ("floor", "Floor Vote", "Bill is debated, amended, and voted on by the full chamber"),
    ("other_chamber", "Other Chamber", "Bill is sent to the other chamber for consideration"),
    ("conference", "Conference", "If versions differ, a conference committee resolves differences"),
    ("president", "President", "Bill is sent to the President for signature or veto"),
    ("law", "Law", "Bill becomes law after presidential signature or veto override"),
]


def current_stage(bill_type: str, status: Optional[str]) -> int:
    """Index into ``STAGES`` inferred from the bill's status text."""
    status = (status or "").lower()
    bill_type = (bill_type or "").lower()
    if "enacted" in status or any(p in status for p in ("became law", "became public law", "became private law")):
        return 6
    if "president" in status or "vetoed" in status:
        return 5
    if "conference" in status:
        return 4
    if (bill_type.startswith("h") and "senate" in status) or (bill_type.startswith("s") and "house" in status):
        return 3
    if "vote" in status or "passed" in status:
        return 2
    if "committee" in status:
        return 1
    return 0


def _items(data: Optional[dict], key: str) -> list:
    value = (data or {}).get(key) or []
    return value if isinstance(value, list) else [value]


def transform_action(action: dict) -> dict:
    source = action.get("sourceSystem") or {}
    return {
        "date": action.get("actionDate"),
        "text": action.get("text"),
        "type": action.get("type"),
        "action_code": action.get("actionCode"),
        "source": source.get("name"),
    }


def transform_cosponsor(cosponsor: dict) -> dict:
    return {
        "bioguide_id": cosponsor.get("bioguideId"),
        "full_name": cosponsor.get("fullName"),
        "party": cosponsor.get("party"),
        "state": cosponsor.get("state"),
        "district": cosponsor.get("district"),
        "sponsorship_date": cosponsor.get("sponsorshipDate"),
        "is_original_cosponsor": bool(cosponsor.get("isOriginalCosponsor")),
    }


def transform_committee(committee: dict) -> dict:
    return {
        "name": committee.get("name"),
        "chamber": committee.get("chamber"),
        "system_code": committee.get("systemCode"),
        "activities": [a.get("name") for a in _items(committee, "activities") if a.get("name")],
    }


def introduction(bill: Bill) -> dict:
    """Who introduced the bill, where and when."""
    chamber = "House" if bill.bill_type.startswith("h") else "Senate"
    sponsor = (bill.sponsors or [None])[0]
    cosponsors = bill.cosponsors_count or 0

    text = f"{bill.bill_type.upper()} {bill.number} was introduced"
    if bill.introduced_date:
        introduced = bill.introduced_date
        text += f" on {introduced:%b} {introduced.day}, {introduced.year}"
    text += f" in the {chamber}."
    if sponsor:
        text += f" Introduced by {sponsor.get('full_name')} ({sponsor.get('party')}-{sponsor.get('state')})"
        if cosponsors:
            text += f" with {cosponsors} cosponsor{'s' if cosponsors != 1 else ''}"
        text += "."

    return {
        "date": bill.introduced_date.isoformat() if bill.introduced_date else None,
        "chamber": chamber.lower(),
        "sponsor": sponsor,
        "cosponsors_count": cosponsors,
        "text": text,
    }


class TimelineService:
    """Builds the legislative timeline from Congress.gov bill sub-resources."""

    def __init__(self, fetcher: Optional[BillFetcher] = None):
        self._fetcher = fetcher

    @property
    def fetcher(self) -> BillFetcher:
        if self._fetcher is None:
            self._fetcher = BillFetcher()
        return self._fetcher

    def _require_bill(self, bill_id: str) -> Bill:
        parse_bill_id(bill_id)
        session = get_session()
        try:
            bill = session.get(Bill, bill_id)
        finally:
            session.close()
        if bill is None:
            bill = self.fetcher.ensure_bill_in_database(bill_id)
        if bill is None:
            raise NotFoundError(f"Bill not found: {bill_id}")
        return bill

    def get_bill_actions(self, bill_id: str) -> list[dict]:
        """Recorded actions, newest first."""
        congress, bill_type, number = parse_bill_id(bill_id)
        data = self.fetcher.api.get_bill_actions(congress, bill_type, number)
        actions = [transform_action(a) for a in _items(data, "actions")]
        actions.sort(key=lambda a: a["date"] or "", reverse=True)
        log.info("Fetched bill actions", bill_id=bill_id, count=len(actions))
        return actions

    def get_bill_cosponsors(self, bill_id: str) -> list[dict]:
        congress, bill_type, number = parse_bill_id(bill_id)
        data = self.fetcher.api.get_bill_cosponsors(congress, bill_type, number)
        cosponsors = [transform_cosponsor(c) for c in _items(data, "cosponsors")]
        log.info("Fetched bill cosponsors", bill_id=bill_id, count=len(cosponsors))
        return cosponsors

    def get_bill_committees(self, bill_id: str) -> list[dict]:
        """Committees the bill was referred to; stored on the bill row."""
        congress, bill_type, number = parse_bill_id(bill_id)
        data = self.fetcher.api.get_bill_committees(congress, bill_type, number)
        committees = [transform_committee(c) for c in _items(data, "committees")]
        if committees:
            self._store_committees(bill_id, committees)
        return committees

    def _store_committees(self, bill_id: str, committees: list[dict]):
        session = get_session()
        try:
            bill = session.get(Bill, bill_id)
            if bill is None:
                return
            bill.committees = [
                {"name": c["name"], "chamber": c["chamber"], "system_code": c["system_code"]}
                for c in committees
            ]
            bill.updated_at = datetime.utcnow()
            session.commit()
        except Exception as e:
            session.rollback()
            log.warning("Could not store bill committees", bill_id=bill_id, error=str(e))
        finally:
            session.close()

    def get_bill_timeline(self, bill_id: str) -> dict:
        """Stages with completed/current/upcoming state, the introduction and recorded actions."""
        bill = self._require_bill(bill_id)
        index = current_stage(bill.bill_type, bill.status)

        stages = []
        for position, (stage_id, label, description) in enumerate(STAGES):
            if position < index:
                state = "completed"
            elif position == index:
                state = "current"
            else:
                state = "upcoming"
            stages.append({"id": stage_id, "label": label, "description": description, "state": state})

        try:
            actions = self.get_bill_actions(bill_id)
        except LegisTrackError as e:
            log.warning("Could not fetch bill actions", bill_id=bill_id, error=str(e))
            actions = []

        return {
            "bill_id": bill.id,
            "current_stage": STAGES[index][0],
            "stages": stages,
            "latest_action": bill.latest_action,
            "introduction": introduction(bill),
            "actions": actions,
        }
