"""User activity logging and engagement statistics."""

from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import func

from legistrack.models.database import Bill, TrackedBill, User, UserActivity, get_session

log = structlog.get_logger()

BILL_VIEW = "bill_view"
CONTACT_REPRESENTATIVE = "contact_representative"


class AnalyticsService:
    """Reads and writes the ``user_activities`` log."""

    def track_user_activity(self, user_id: str, activity_type: str, target_id: Optional[str] = None,
                            target_type: Optional[str] = None, details: Optional[dict] = None) -> Optional[dict]:
        if not user_id:
            return None

        session = get_session()
        try:
            activity = UserActivity(
                user_id=user_id,
                activity_type=activity_type,
                target_id=target_id,
                target_type=target_type,
                details=details or {},
            )
            session.add(activity)
            session.commit()
            log.debug("Tracked user activity", user_id=user_id, activity_type=activity_type, target_id=target_id)
            return activity.to_dict()
        except Exception as e:
            session.rollback()
            log.error("Failed to track user activity", user_id=user_id, error=str(e))
            raise
        finally:
            session.close()

    def record_bill_view(self, user_id: str, bill_id: str) -> Optional[dict]:
        return self.track_user_activity(user_id, BILL_VIEW, bill_id, "bill")

    def get_user_activity_history(self, user_id: str, limit: int = 50) -> list[dict]:
        if not user_id:
            return []
        session = get_session()
        try:
            rows = session.query(UserActivity).filter(
                UserActivity.user_id == user_id
            ).order_by(UserActivity.created_at.desc(), UserActivity.id.desc()).limit(limit).all()
            return [r.to_dict() for r in rows]
        finally:
            session.close()

    def get_user_engagement_stats(self, user_id: str) -> dict:
        """Views, tracked bills and contacts for a user's dashboard."""
        stats = {"bills_viewed": 0, "bills_tracked": 0, "representatives_contacted": 0, "total_activities": 0}
        if not user_id:
            return stats

        session = get_session()
        try:
            stats["bills_tracked"] = session.query(TrackedBill).filter(TrackedBill.user_id == user_id).count()
            stats["bills_viewed"] = session.query(
                func.coalesce(func.sum(TrackedBill.view_count), 0)
            ).filter(TrackedBill.user_id == user_id).scalar()
            stats["total_activities"] = session.query(UserActivity).filter(
                UserActivity.user_id == user_id
            ).count()
            stats["representatives_contacted"] = session.query(UserActivity).filter(
                UserActivity.user_id == user_id,
                UserActivity.activity_type == CONTACT_REPRESENTATIVE,
            ).count()
        finally:
            session.close()
        return stats

    def get_system_stats(self) -> dict:
        session = get_session()
        try:
            return {
                "total_users": session.query(User).count(),
                "total_bills": session.query(Bill).count(),
                "total_activities": session.query(UserActivity).count(),
                "last_updated": datetime.utcnow().isoformat(),
            }
        finally:
            session.close()
