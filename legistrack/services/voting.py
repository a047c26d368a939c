"""Roll call votes on bills and member voting records."""

from datetime import datetime
from typing import Optional

import structlog

from legistrack.etl.bills import make_bill_id, parse_bill_id
from legistrack.etl.congress_api import CongressApiClient
from legistrack.etl.govtrack import GovTrackClient, transform_vote, transform_voter
from legistrack.exceptions import NotFoundError, UpstreamAPIError
from legistrack.models.database import Bill, Representative, get_session
from legistrack.services.bills import DEFAULT_CONGRESS

log = structlog.get_logger()


def parse_vote_result(result: Optional[str]) -> str:
    """Normalize a roll call result string."""
    result = (result or "").lower()
    if "passed" in result:
        return "passed"
    if "failed" in result:
        return "failed"
    if "agreed" in result:
        return "agreed_to"
    if "rejected" in result:
        return "rejected"
    return "unknown"


def transform_house_vote(vote: dict) -> dict:
    """Flatten a Congress.gov House roll call vote."""
    bill_id = None
    if vote.get("legislationType") and vote.get("legislationNumber"):
        number = str(vote["legislationNumber"])
        if number.isdigit():
            bill_id = make_bill_id(vote.get("congress"), vote["legislationType"], int(number))

    date = None
    if vote.get("startDate"):
        try:
            date = datetime.fromisoformat(vote["startDate"]).date().isoformat()
        except ValueError:
            log.debug("Unparseable vote date", value=vote["startDate"])

    return {
        "congress": vote.get("congress"),
        "session": vote.get("sessionNumber", 1),
        "chamber": "house",
        "roll_call": vote.get("rollCallNumber"),
        "date": date,
        "question": vote.get("voteQuestion") or vote.get("question"),
        "vote_type": vote.get("voteType"),
        "result": parse_vote_result(vote.get("result")),
        "result_text": vote.get("result"),
        "bill_id": bill_id,
        "amendment_number": vote.get("amendmentNumber"),
        "url": vote.get("url"),
    }


def vote_summary(votes: list[dict]) -> dict:
    """Latest result and vote count per chamber. ``votes`` must be newest first."""
    summary = {}
    for chamber in ("house", "senate"):
        chamber_votes = [v for v in votes if v["chamber"] == chamber]
        if chamber_votes:
            latest = chamber_votes[0]
            summary[chamber] = {
                "result": latest["result"],
                "date": latest["created"],
                "vote_count": len(chamber_votes),
            }
    return summary


class VotingService:
    """Reads votes from GovTrack and keeps ``bills.voting_data`` current."""

    def __init__(self, govtrack: Optional[GovTrackClient] = None, api: Optional[CongressApiClient] = None):
        self._govtrack = govtrack
        self._api = api

    @property
    def govtrack(self) -> GovTrackClient:
        if self._govtrack is None:
            self._govtrack = GovTrackClient()
        return self._govtrack

    @property
    def api(self) -> CongressApiClient:
        if self._api is None:
            self._api = CongressApiClient()
        return self._api

    def _store_voting_data(self, bill_id: str, votes: list[dict]):
        session = get_session()
        try:
            bill = session.get(Bill, bill_id)
            if bill is None:
                return
            bill.voting_data = {
                "votes": votes,
                "vote_count": len(votes),
                "last_vote_date": votes[0]["created"],
                "vote_summary": vote_summary(votes),
            }
            bill.updated_at = datetime.utcnow()
            session.commit()
            log.info("Updated bill voting data", bill_id=bill_id, votes=len(votes))
        except Exception as e:
            session.rollback()
            log.warning("Could not update bill voting data", bill_id=bill_id, error=str(e))
        finally:
            session.close()

    def _stored_voting_data(self, bill_id: str) -> Optional[dict]:
        session = get_session()
        try:
            bill = session.get(Bill, bill_id)
            return bill.voting_data if bill is not None else None
        finally:
            session.close()

    def get_bill_votes(self, bill_id: str) -> dict:
        """Votes on a bill, newest first.

        Falls back to the voting data stored on the bill when GovTrack is
        unavailable; the error is re-raised when nothing is stored.
        """
        congress, bill_type, number = parse_bill_id(bill_id)
        try:
            data = self.govtrack.get_bill_votes(congress, bill_type, number)
        except UpstreamAPIError as e:
            stored = self._stored_voting_data(bill_id)
            if not stored:
                raise
            log.warning("GovTrack unavailable, using stored votes", bill_id=bill_id, error=str(e))
            return {
                "bill_id": bill_id,
                "votes": stored.get("votes") or [],
                "total": stored.get("vote_count") or 0,
                "vote_summary": stored.get("vote_summary") or {},
            }

        votes = [transform_vote(v) for v in data.get("objects") or []]
        total = (data.get("meta") or {}).get("total_count") or len(votes)
        log.info("Fetched bill votes", bill_id=bill_id, count=len(votes))
        if votes:
            self._store_voting_data(bill_id, votes)
        return {"bill_id": bill_id, "votes": votes, "total": total, "vote_summary": vote_summary(votes)}

    def get_vote_details(self, vote_id: int) -> dict:
        """A single vote with how each member voted."""
        vote = self.govtrack.get_vote(vote_id)
        if vote is None:
            raise NotFoundError(f"Vote not found: {vote_id}")
        voters = [transform_voter(v) for v in self.govtrack.get_vote_voters(vote_id)]
        return {**transform_vote(vote), "voters": voters}

    def _govtrack_person_id(self, bioguide_id: str) -> int:
        session = get_session()
        try:
            representative = session.get(Representative, bioguide_id)
        finally:
            session.close()
        if representative is None:
            raise NotFoundError(f"Representative not found: {bioguide_id}")
        if representative.govtrack_id is not None:
            return representative.govtrack_id

        person_id = self.govtrack.find_person_id(bioguide_id)
        if person_id is None:
            raise NotFoundError(f"No GovTrack record for representative {bioguide_id}")

        session = get_session()
        try:
            representative = session.get(Representative, bioguide_id)
            representative.govtrack_id = person_id
            session.commit()
        except Exception as e:
            session.rollback()
            log.warning("Could not store GovTrack id", bioguide_id=bioguide_id, error=str(e))
        finally:
            session.close()
        return person_id

    def get_member_voting_record(self, bioguide_id: str, congress: Optional[int] = None,
                                 limit: int = 20) -> dict:
        """Recent votes cast by a member, newest first."""
        person_id = self._govtrack_person_id(bioguide_id)
        data = self.govtrack.get_member_votes(person_id, congress, limit)

        votes = []
        for voter in (data.get("objects") or [])[:limit]:
            vote = voter.get("vote") if isinstance(voter.get("vote"), dict) else {"id": voter.get("vote")}
            option = voter.get("option") if isinstance(voter.get("option"), dict) else {}
            votes.append({**transform_vote(vote), "option": option.get("value") or option.get("key")})

        total = (data.get("meta") or {}).get("total_count") or len(votes)
        log.info("Fetched member votes", bioguide_id=bioguide_id, count=len(votes))
        return {"bioguide_id": bioguide_id, "govtrack_id": person_id, "votes": votes, "total": total}

    def get_house_votes(self, congress: Optional[int] = None, limit: int = 20, offset: int = 0) -> list[dict]:
        """Recent House roll call votes from Congress.gov."""
        congress = congress or DEFAULT_CONGRESS
        votes = self.api.get_house_votes(congress, limit=limit, offset=offset)
        log.info("Fetched House votes", congress=congress, count=len(votes))
        return [transform_house_vote(v) for v in votes]
