"""Bills a user follows, with per-bill notification settings and notes."""

from datetime import datetime, timedelta
from typing import Optional

import structlog

from legistrack.etl.bills import BillFetcher, parse_bill_id
from legistrack.exceptions import NotFoundError
from legistrack.models.database import Bill, TrackedBill, get_session
from legistrack.services.analytics import AnalyticsService
from legistrack.services.users import ensure_user

log = structlog.get_logger()

DEFAULT_NOTIFICATION_SETTINGS = {
    "statusChanges": True,
    "votingUpdates": True,
    "aiInsights": False,
    "majorMilestones": True,
}

RECENT_DAYS = 7


class TrackingService:
    """Reads and writes ``user_tracked_bills``."""

    def __init__(self, fetcher: Optional[BillFetcher] = None, analytics: Optional[AnalyticsService] = None):
        self._fetcher = fetcher
        self.analytics = analytics or AnalyticsService()

    @property
    def fetcher(self) -> BillFetcher:
        if self._fetcher is None:
            self._fetcher = BillFetcher()
        return self._fetcher

    def track_bill(self, user_id: str, bill_id: str, notification_settings: Optional[dict] = None,
                   user_notes: Optional[str] = None, user_tags: Optional[list[str]] = None) -> dict:
        """Start tracking a bill, fetching it from Congress.gov if it is not stored yet."""
        bill = self.fetcher.ensure_bill_in_database(bill_id)
        if bill is None:
            raise NotFoundError(f"Could not find or fetch bill {bill_id}")

        now = datetime.utcnow()
        session = get_session()
        try:
            ensure_user(session, user_id)
            tracked = session.query(TrackedBill).filter_by(user_id=user_id, bill_id=bill_id).first()
            if tracked is None:
                tracked = TrackedBill(user_id=user_id, bill_id=bill_id)
                session.add(tracked)
            tracked.notification_settings = notification_settings or dict(DEFAULT_NOTIFICATION_SETTINGS)
            tracked.user_notes = user_notes
            tracked.user_tags = user_tags or []
            tracked.tracked_at = now
            tracked.last_viewed = now
            tracked.view_count = 1
            session.commit()
            log.info("Bill tracked", user_id=user_id, bill_id=bill_id)
            return tracked.tracking_dict()
        except Exception as e:
            session.rollback()
            log.error("Failed to track bill", user_id=user_id, bill_id=bill_id, error=str(e))
            raise
        finally:
            session.close()

    def untrack_bill(self, user_id: str, bill_id: str) -> bool:
        session = get_session()
        try:
            deleted = session.query(TrackedBill).filter_by(user_id=user_id, bill_id=bill_id).delete()
            session.commit()
            log.info("Bill untracked", user_id=user_id, bill_id=bill_id, deleted=deleted)
            return deleted > 0
        except Exception as e:
            session.rollback()
            log.error("Failed to untrack bill", user_id=user_id, bill_id=bill_id, error=str(e))
            raise
        finally:
            session.close()

    def get_tracked_bills(self, user_id: str) -> list[dict]:
        """Tracked bills, newest first, each with a ``tracking`` section."""
        session = get_session()
        try:
            rows = session.query(TrackedBill, Bill).join(
                Bill, Bill.id == TrackedBill.bill_id
            ).filter(TrackedBill.user_id == user_id).order_by(
                TrackedBill.tracked_at.desc(), TrackedBill.id.desc()
            ).all()
        finally:
            session.close()

        return [{**bill.to_dict(), "tracking": tracked.tracking_dict()} for tracked, bill in rows]

    def is_bill_tracked(self, user_id: str, bill_id: str) -> bool:
        session = get_session()
        try:
            return session.query(TrackedBill).filter_by(user_id=user_id, bill_id=bill_id).first() is not None
        finally:
            session.close()

    def _update_tracking(self, user_id: str, bill_id: str, **columns):
        session = get_session()
        try:
            tracked = session.query(TrackedBill).filter_by(user_id=user_id, bill_id=bill_id).first()
            if tracked is None:
                raise NotFoundError(f"Bill {bill_id} is not tracked by user {user_id}")
            for name, value in columns.items():
                setattr(tracked, name, value)
            session.commit()
            return tracked.tracking_dict()
        except NotFoundError:
            session.rollback()
            raise
        except Exception as e:
            session.rollback()
            log.error("Failed to update tracked bill", user_id=user_id, bill_id=bill_id, error=str(e))
            raise
        finally:
            session.close()

    def update_notification_settings(self, user_id: str, bill_id: str, settings: dict) -> dict:
        return self._update_tracking(user_id, bill_id, notification_settings=settings)

    def update_bill_notes(self, user_id: str, bill_id: str, notes: Optional[str], tags: list[str]) -> dict:
        return self._update_tracking(user_id, bill_id, user_notes=notes, user_tags=tags or [])

    def record_bill_view(self, user_id: str, bill_id: str):
        """Count a view on a tracked bill and log it. Failures are only logged."""
        if not user_id:
            return
        try:
            parse_bill_id(bill_id)
            session = get_session()
            try:
                tracked = session.query(TrackedBill).filter_by(user_id=user_id, bill_id=bill_id).first()
                if tracked is not None:
                    tracked.view_count = (tracked.view_count or 0) + 1
                    tracked.last_viewed = datetime.utcnow()
                    session.commit()
            finally:
                session.close()
            self.analytics.record_bill_view(user_id, bill_id)
        except Exception as e:
            log.warning("Could not record bill view", user_id=user_id, bill_id=bill_id, error=str(e))

    def get_tracking_stats(self, user_id: str) -> dict:
        tracked = self.get_tracked_bills(user_id)
        week_ago = datetime.utcnow() - timedelta(days=RECENT_DAYS)
        return {
            "total_tracked": len(tracked),
            "total_views": sum(b["tracking"]["view_count"] for b in tracked),
            "recent_activity": sum(
                1 for b in tracked
                if b["tracking"]["tracked_at"] and datetime.fromisoformat(b["tracking"]["tracked_at"]) > week_ago
            ),
        }
