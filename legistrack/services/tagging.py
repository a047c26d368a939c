"""Subject tags with confidence scores, assigned by the LLM or derived from bill data."""

import time
from datetime import datetime
from typing import Optional

import structlog

from legistrack.config import get_config
from legistrack.etl.bills import SyncResult
from legistrack.exceptions import LegisTrackError, NotFoundError
from legistrack.models.database import Bill, BillSubject, BillTag, TagSource, get_session
from legistrack.summarizers.llm import LLMService

log = structlog.get_logger()

POLICY_AREA_CONFIDENCE = 90
SUBJECT_CONFIDENCE = 80
NEGATIVE_FEEDBACK_PENALTY = 20


def clamp_score(value) -> Optional[int]:
    try:
        return max(0, min(100, round(float(value))))
    except (TypeError, ValueError):
        return None


def fallback_tags(bill: Bill, subjects: list[dict]) -> list[dict]:
    """Tags from the bill's own policy area and legislative subjects."""
    tags = []
    if bill.policy_area:
        match = next((s for s in subjects if s["type"] == "policy"
                      and s["name"].lower() == bill.policy_area.lower()), None)
        if match:
            tags.append({"subject_id": match["id"], "name": match["name"],
                         "confidence_score": POLICY_AREA_CONFIDENCE})

    for name in bill.subjects or []:
        match = next((s for s in subjects if s["type"] == "legislative"
                      and s["name"].lower() == name.lower()), None)
        if match:
            tags.append({"subject_id": match["id"], "name": match["name"],
                         "confidence_score": SUBJECT_CONFIDENCE})
    return tags


def merge_feedback(feedback: Optional[dict], is_accurate: bool) -> dict:
    """Fold one accuracy vote into the running feedback record.

    ``accurate`` is the weighted majority of all votes so far, with ties
    counting as accurate.
    """
    feedback = feedback or {}
    count = feedback.get("feedback_count") or 0
    new_count = count + 1

    accurate = is_accurate
    if feedback.get("accurate") is not None and count > 0:
        average = (int(feedback["accurate"]) * count + int(is_accurate)) / new_count
        accurate = average >= 0.5

    return {
        "accurate": accurate,
        "feedback_count": new_count,
        "last_feedback": datetime.utcnow().isoformat(),
    }


class TaggingService:
    """Assigns taxonomy subjects to bills and serves bills by subject."""

    def __init__(self, llm: Optional[LLMService] = None):
        self.config = get_config()
        self._llm = llm

    @property
    def llm(self) -> LLMService:
        if self._llm is None:
            self._llm = LLMService()
        return self._llm

    def _subjects(self) -> list[dict]:
        session = get_session()
        try:
            return [s.to_dict() for s in session.query(BillSubject).all()]
        finally:
            session.close()

    def generate_tags_for_bill(self, bill: Bill) -> list[dict]:
        """Tags at or above the minimum confidence, strongest first.

        Uses the LLM when it is configured and falls back to the bill's own
        policy area and subjects when it is not or when generation fails.
        """
        subjects = self._subjects()
        if not subjects:
            log.warning("No subjects available for tagging", bill_id=bill.id)
            return []

        tags = None
        if self.llm.is_available():
            try:
                tags = self.llm.generate_bill_tags(bill, subjects)
            except LegisTrackError as e:
                log.warning("AI tagging failed, using bill subjects", bill_id=bill.id, error=str(e))
        if tags is None:
            tags = fallback_tags(bill, subjects)

        names = {s["id"]: s["name"] for s in subjects}
        result = {}
        for tag in tags:
            subject_id = tag.get("subject_id")
            score = clamp_score(tag.get("confidence_score"))
            if subject_id not in names or score is None or score < self.config.tag_min_confidence:
                continue
            if subject_id not in result or result[subject_id]["confidence_score"] < score:
                result[subject_id] = {"subject_id": subject_id, "name": names[subject_id], "confidence_score": score}

        ranked = sorted(result.values(), key=lambda t: t["confidence_score"], reverse=True)
        ranked = ranked[:self.config.tag_max_per_bill]
        log.info("Generated tags", bill_id=bill.id, count=len(ranked))
        return ranked

    def save_tags_for_bill(self, bill_id: str, tags: list[dict], source: str = TagSource.AI.value) -> int:
        """Upsert tags by (bill, subject). Existing feedback is kept."""
        if not tags:
            return 0

        session = get_session()
        now = datetime.utcnow()
        try:
            for tag in tags:
                row = session.query(BillTag).filter(
                    BillTag.bill_id == bill_id,
                    BillTag.subject_id == tag["subject_id"],
                ).first()
                if row is None:
                    row = BillTag(bill_id=bill_id, subject_id=tag["subject_id"],
                                  user_feedback={"accurate": None, "feedback_count": 0, "last_feedback": None})
                    session.add(row)
                row.confidence_score = tag["confidence_score"]
                row.source = source
                row.updated_at = now
            session.commit()
        except Exception as e:
            session.rollback()
            log.error("Failed to save tags", bill_id=bill_id, error=str(e))
            raise
        finally:
            session.close()

        log.info("Saved tags", bill_id=bill_id, count=len(tags))
        return len(tags)

    def tag_bill(self, bill_id: str) -> list[dict]:
        """Generate and save tags for a stored bill."""
        session = get_session()
        try:
            bill = session.get(Bill, bill_id)
        finally:
            session.close()
        if bill is None:
            raise NotFoundError(f"Bill not found: {bill_id}")

        tags = self.generate_tags_for_bill(bill)
        self.save_tags_for_bill(bill_id, tags)
        return self.get_tags_for_bill(bill_id)

    def process_bill_batch(self, bills: list[Bill], source: str = TagSource.AI.value) -> SyncResult:
        """Tag each bill, pausing between bills. A failing bill is skipped."""
        processed = 0
        errors = []
        for index, bill in enumerate(bills):
            try:
                tags = self.generate_tags_for_bill(bill)
                if tags:
                    self.save_tags_for_bill(bill.id, tags, source)
                processed += 1
            except LegisTrackError as e:
                log.warning("Failed to tag bill", bill_id=bill.id, error=str(e))
                errors.append(f"{bill.id}: {e}")

            if index < len(bills) - 1:
                time.sleep(self.config.tagging_bill_delay)

        return SyncResult(True, processed, f"Tagged {processed} of {len(bills)} bills", errors)

    def process_all_bills(self, limit: int = 50, skip_tagged: bool = True) -> SyncResult:
        """Tag the most recently updated bills in batches."""
        session = get_session()
        try:
            query = session.query(Bill)
            if skip_tagged:
                tagged = [row.bill_id for row in session.query(BillTag.bill_id).distinct()]
                query = query.filter(Bill.id.notin_(tagged))
            bills = query.order_by(Bill.updated_at.desc()).limit(limit).all()
        finally:
            session.close()

        if not bills:
            return SyncResult(True, 0, "No bills to tag")

        log.info("Tagging bills", count=len(bills))
        processed = 0
        errors = []
        batch_size = self.config.tagging_batch_size
        for start in range(0, len(bills), batch_size):
            result = self.process_bill_batch(bills[start:start + batch_size])
            processed += result.count
            errors.extend(result.errors)
            if start + batch_size < len(bills):
                time.sleep(self.config.tagging_batch_delay)

        log.info("Tagging complete", processed=processed, failed=len(errors))
        return SyncResult(True, processed, f"Tagged {processed} of {len(bills)} bills", errors)

    def get_tags_for_bill(self, bill_id: str, min_confidence: int = 0) -> list[dict]:
        session = get_session()
        try:
            rows = session.query(BillTag, BillSubject).join(
                BillSubject, BillSubject.id == BillTag.subject_id
            ).filter(
                BillTag.bill_id == bill_id,
                BillTag.confidence_score >= min_confidence,
            ).order_by(BillTag.confidence_score.desc()).all()
        finally:
            session.close()

        return [
            {**tag.to_dict(), "name": subject.name, "type": subject.type}
            for tag, subject in rows
        ]

    def submit_tag_feedback(self, tag_id: int, is_accurate: bool) -> dict:
        """Record a reader's accuracy vote.

        The first vote, when negative, lowers the tag's confidence.
        """
        session = get_session()
        try:
            tag = session.get(BillTag, tag_id)
            if tag is None:
                raise NotFoundError(f"Tag not found: {tag_id}")

            previous = tag.user_feedback or {}
            if not is_accurate and not previous.get("feedback_count"):
                tag.confidence_score = max(0, tag.confidence_score - NEGATIVE_FEEDBACK_PENALTY)
            tag.user_feedback = merge_feedback(previous, is_accurate)
            tag.updated_at = datetime.utcnow()
            session.commit()
            log.info("Tag feedback recorded", tag_id=tag_id, accurate=is_accurate)
            return tag.to_dict()
        except NotFoundError:
            raise
        except Exception as e:
            session.rollback()
            log.error("Failed to record tag feedback", tag_id=tag_id, error=str(e))
            raise
        finally:
            session.close()

    def get_bills_by_subject(self, subject_id: str, min_confidence: int = 70, limit: int = 20) -> list[dict]:
        """Bills tagged with a subject, most recently updated first."""
        session = get_session()
        try:
            tags = session.query(BillTag).filter(
                BillTag.subject_id == subject_id,
                BillTag.confidence_score >= min_confidence,
            ).order_by(BillTag.confidence_score.desc()).limit(limit).all()
            scores = {t.bill_id: t.confidence_score for t in tags}
            if not scores:
                return []
            bills = session.query(Bill).filter(Bill.id.in_(list(scores))).order_by(Bill.updated_at.desc()).all()
        finally:
            session.close()

        return [{**b.to_dict(), "tag_confidence": scores[b.id]} for b in bills]
