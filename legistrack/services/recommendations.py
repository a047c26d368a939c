"""Personalised and similar-bill recommendations."""

from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from legistrack.cache import TTLCache
from legistrack.config import get_config
from legistrack.models.database import Bill, User, get_session
from legistrack.services.bills import BillService, with_analysis

log = structlog.get_logger()

MAX_RECOMMENDATIONS = 10
MIN_RECOMMENDATIONS = 5


def matches_user(bill: Bill, state: Optional[str], interests: list[str]) -> bool:
    """True when a sponsor is from the user's state or the bill covers one of their interests."""
    if state and any((s.get("state") or "").upper() == state.upper() for s in (bill.sponsors or [])):
        return True
    policy_area = (bill.policy_area or "").lower()
    subjects = set(bill.subjects or [])
    for interest in interests:
        if interest.lower() in policy_area or interest in subjects:
            return True
    return False


class RecommendationService:
    """Suggests bills from a user's location and interests."""

    def __init__(self, bills: Optional[BillService] = None):
        self.config = get_config()
        self.bills = bills or BillService()
        self.cache = TTLCache(self.config.recommendations_cache_ttl, name="recommendations")

    def _recommend(self, user_id: str) -> list[dict]:
        session = get_session()
        try:
            user = session.get(User, user_id)
            preferences = (user.preferences if user else None) or {}
            state = (preferences.get("location") or {}).get("state")
            interests = preferences.get("interests") or []

            query = session.query(Bill).order_by(Bill.updated_at.desc())
            if state or interests:
                candidates = [b for b in query.all() if matches_user(b, state, interests)]
            else:
                candidates = query.all()
            bills = candidates[:MAX_RECOMMENDATIONS]
        finally:
            session.close()

        recommendations = [with_analysis(b) for b in bills]
        if len(recommendations) < MIN_RECOMMENDATIONS:
            seen = {b["id"] for b in recommendations}
            for bill in self.bills.get_trending_bills(MAX_RECOMMENDATIONS):
                if bill["id"] not in seen:
                    recommendations.append(bill)
                    seen.add(bill["id"])

        log.info("Built recommendations", user_id=user_id, count=len(recommendations), state=state)
        return recommendations

    def get_personalized_recommendations(self, user_id: str, force_refresh: bool = False) -> list[dict]:
        cache_key = f"recommendations-{user_id}"
        if not force_refresh:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return cached

        try:
            recommendations = self._recommend(user_id)
        except SQLAlchemyError as e:
            log.error("Failed to build recommendations, using trending", user_id=user_id, error=str(e))
            return self.bills.get_trending_bills(MAX_RECOMMENDATIONS)

        self.cache.set(cache_key, recommendations)
        return recommendations

    def get_similar_bills(self, bill_id: str, limit: int = 5) -> list[dict]:
        """Bills in the same policy area that share a subject with ``bill_id``."""
        session = get_session()
        try:
            original = session.get(Bill, bill_id)
            if original is None:
                return []

            query = session.query(Bill).filter(Bill.id != bill_id)
            if original.policy_area:
                query = query.filter(Bill.policy_area == original.policy_area)
            candidates = query.order_by(Bill.updated_at.desc()).all()
        finally:
            session.close()

        subjects = set(original.subjects or [])
        if subjects:
            candidates = [b for b in candidates if subjects & set(b.subjects or [])]
        return [b.to_dict() for b in candidates[:limit]]

    def clear_cache(self):
        self.cache.clear()
