"""User notifications and operator alerts for LegisTrack."""

from datetime import datetime
from typing import Optional

import httpx
import structlog

from legistrack.config import get_config
from legistrack.exceptions import NotFoundError
from legistrack.models.database import Notification, NotificationType, User, get_session

log = structlog.get_logger()

DEFAULT_NOTIFICATION_PREFERENCES = {"frequency": "daily", "email": True, "push": False}


class NotificationService:
    """In-app notifications stored in the ``notifications`` table."""

    def get_user_notifications(self, user_id: str, limit: int = 20, unread_only: bool = False) -> list[dict]:
        session = get_session()
        try:
            query = session.query(Notification).filter(Notification.user_id == user_id)
            if unread_only:
                query = query.filter(Notification.read.is_(False))
            rows = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
            return [r.to_dict() for r in rows]
        finally:
            session.close()

    def create_notification(self, user_id: str, type: str, title: str, message: str = "",
                            data: Optional[dict] = None) -> dict:
        """Store a notification for a user.

        Args:
            user_id: Recipient
            type: One of the NotificationType values
            title: Short heading
            message: Body text
            data: Optional links such as billId or representativeId

        Returns:
            The stored notification as a dict
        """
        NotificationType(type)

        session = get_session()
        try:
            notification = Notification(user_id=user_id, type=type, title=title, message=message, data=data or {})
            session.add(notification)
            session.commit()
            log.info("Notification created", user_id=user_id, type=type)
            return notification.to_dict()
        except Exception as e:
            session.rollback()
            log.error("Failed to create notification", user_id=user_id, error=str(e))
            raise
        finally:
            session.close()

    def _owned(self, session, user_id: str, notification_id: int) -> Notification:
        notification = session.get(Notification, notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotFoundError(f"Notification not found: {notification_id}")
        return notification

    def mark_as_read(self, user_id: str, notification_id: int):
        session = get_session()
        try:
            self._owned(session, user_id, notification_id).read = True
            session.commit()
        finally:
            session.close()

    def mark_all_as_read(self, user_id: str) -> int:
        session = get_session()
        try:
            updated = session.query(Notification).filter(
                Notification.user_id == user_id, Notification.read.is_(False)
            ).update({Notification.read: True})
            session.commit()
            return updated
        finally:
            session.close()

    def delete_notification(self, user_id: str, notification_id: int):
        session = get_session()
        try:
            session.delete(self._owned(session, user_id, notification_id))
            session.commit()
        finally:
            session.close()

    def get_notification_preferences(self, user_id: str) -> dict:
        session = get_session()
        try:
            user = session.get(User, user_id)
            preferences = (user.preferences if user else None) or {}
        finally:
            session.close()
        return preferences.get("notifications") or dict(DEFAULT_NOTIFICATION_PREFERENCES)

    def update_notification_preferences(self, user_id: str, preferences: dict) -> dict:
        session = get_session()
        try:
            user = session.get(User, user_id)
            if user is None:
                raise NotFoundError(f"User not found: {user_id}")
            user.preferences = {**(user.preferences or {}), "notifications": preferences}
            user.updated_at = datetime.utcnow()
            session.commit()
            return preferences
        except NotFoundError:
            session.rollback()
            raise
        except Exception as e:
            session.rollback()
            log.error("Failed to update notification preferences", user_id=user_id, error=str(e))
            raise
        finally:
            session.close()


class DiscordNotifier:
    """Send operator notifications to Discord via webhook."""

    def __init__(self, client: Optional[httpx.Client] = None):
        self.config = get_config()
        self.webhook_url = self.config.discord_webhook_url
        self.client = client

    def is_configured(self) -> bool:
        """Check if Discord notifications are configured."""
        return bool(self.webhook_url)

    def send(self, title: str, message: str, color: int = 0x5865F2,
             fields: Optional[list[dict]] = None) -> bool:
        """Send a Discord embed message.

        Args:
            title: Embed title
            message: Main message text
            color: Embed color (default: Discord blurple)
            fields: Optional list of field dicts with 'name' and 'value'

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.is_configured():
            log.debug("Discord webhook not configured, skipping notification")
            return False

        embed = {
            "title": title,
            "description": message,
            "color": color,
            "timestamp": datetime.utcnow().isoformat(),
            "footer": {"text": "LegisTrack"},
        }
        if fields:
            embed["fields"] = fields

        try:
            client = self.client or httpx.Client(timeout=10.0)
            try:
                response = client.post(self.webhook_url, json={"embeds": [embed]})
                response.raise_for_status()
            finally:
                if self.client is None:
                    client.close()
            log.info("Discord notification sent", title=title)
            return True
        except httpx.HTTPError as e:
            log.error("Failed to send Discord notification", error=str(e))
            return False

    def notify_batch_update(self, result: dict):
        """Report the per-step counts of a batch update run."""
        details = result.get("details") or {}
        if not result.get("success"):
            self.notify_error("batch-update", result.get("message", "Unknown error"))
            return

        labels = {
            "bills_updated": "Bills",
            "summaries_updated": "Summaries",
            "full_text_updated": "Full Text",
            "policy_areas_updated": "Policy Areas",
            "podcast_overviews_updated": "Podcast Overviews",
        }
        self.send(
            title="Batch Update Complete",
            message=result.get("message", ""),
            color=0x3498DB if any(details.values()) else 0x95A5A6,  # Blue or gray
            fields=[
                {"name": label, "value": str(details.get(key, 0)), "inline": True}
                for key, label in labels.items()
                if key in details
            ],
        )

    def notify_error(self, command: str, error: str):
        """Notify about an error."""
        self.send(
            title=f"Error in {command}",
            message=f"```\n{error[:1000]}\n```",
            color=0xE74C3C,  # Red
        )


def get_notifier() -> DiscordNotifier:
    """Get Discord notifier instance."""
    return DiscordNotifier()
