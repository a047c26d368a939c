"""Database models for LegisTrack."""

from legistrack.models.database import (
    Bill,
    User,
    Representative,
    TrackedBill,
    GeneratedContent,
    BillSubject,
    BillTag,
    UserActivity,
    Notification,
    Chamber,
    ContentType,
    ContentStatus,
    NotificationType,
    TagSource,
    get_session,
    get_engine,
    reset_engine,
    init_db,
)

__all__ = [
    "Bill",
    "User",
    "Representative",
    "TrackedBill",
    "GeneratedContent",
    "BillSubject",
    "BillTag",
    "UserActivity",
    "Notification",
    "Chamber",
    "ContentType",
    "ContentStatus",
    "NotificationType",
    "TagSource",
    "get_session",
    "get_engine",
    "reset_engine",
    "init_db",
]
