"""Database models for LegisTrack."""

from datetime import datetime
from typing import Optional
from sqlalchemy import (
    create_engine, Column, Integer, String, Text, Date, DateTime, Boolean, ForeignKey,
    JSON, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
import enum
import structlog

from legistrack.config import get_config

log = structlog.get_logger()

Base = declarative_base()


class Chamber(enum.Enum):
    HOUSE = "house"
    SENATE = "senate"


class ContentType(enum.Enum):
    ANALYSIS = "analysis"
    AUDIO = "audio"
    VIDEO = "video"


class ContentStatus(enum.Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    READY = "ready"
    FAILED = "failed"


class NotificationType(enum.Enum):
    BILL_UPDATE = "bill_update"
    VOTE = "vote"
    TRACKING = "tracking"
    REPRESENTATIVE = "representative"
    SYSTEM = "system"


class TagSource(enum.Enum):
    AI = "ai"
    MANUAL = "manual"
    FEEDBACK = "feedback"


def _isoformat(value):
    return value.isoformat() if value is not None else None


class Bill(Base):
    """Congressional bill record.

    The primary key is the composite string ``{congress}-{type}-{number}``
    (e.g. ``118-hr-1234``) so rows can be addressed without a lookup.
    """

    __tablename__ = "bills"

    id = Column(String(50), primary_key=True)
    congress = Column(Integer, nullable=False)
    bill_type = Column(String(10), nullable=False)  # hr, s, hjres, sjres, etc.
    number = Column(Integer, nullable=False)

    title = Column(Text)
    short_title = Column(Text)
    status = Column(Text)

    introduced_date = Column(Date)
    latest_action = Column(JSON)  # {"date", "text", "actionCode"}

    sponsors = Column(JSON, default=list)
    cosponsors_count = Column(Integer, default=0)
    committees = Column(JSON, default=list)

    # Policy areas and subjects
    subjects = Column(JSON, default=list)
    policy_area = Column(String(200))

    # Summaries and generated content
    summary = Column(Text)
    ai_analysis = Column(JSON(none_as_null=True))
    podcast_overview = Column(Text)

    # {"votes", "vote_count", "last_vote_date", "vote_summary"} from GovTrack
    voting_data = Column(JSON)

    # Full text
    full_text_url = Column(String(500))
    full_text_content = Column(Text)

    congress_url = Column(String(500))
    last_synced = Column(DateTime)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def latest_action_text(self) -> Optional[str]:
        return (self.latest_action or {}).get("text")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "congress": self.congress,
            "bill_type": self.bill_type,
            "number": self.number,
            "title": self.title,
            "short_title": self.short_title,
            "status": self.status,
            "introduced_date": _isoformat(self.introduced_date),
            "latest_action": self.latest_action,
            "sponsors": self.sponsors or [],
            "cosponsors_count": self.cosponsors_count or 0,
            "committees": self.committees or [],
            "subjects": self.subjects or [],
            "policy_area": self.policy_area,
            "summary": self.summary,
            "ai_analysis": self.ai_analysis,
            "podcast_overview": self.podcast_overview,
            "voting_data": self.voting_data,
            "full_text_url": self.full_text_url,
            "congress_url": self.congress_url,
            "last_synced": _isoformat(self.last_synced),
            "updated_at": _isoformat(self.updated_at),
        }


class User(Base):
    """Application user. Identity is issued by the hosted auth provider."""

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(320))
    full_name = Column(String(200))

    # {"location": {"state", "district", "zip"}, "interests": [...], "notifications": {...}}
    preferences = Column(JSON, default=dict)
    # Demographics: age range, occupation, income bracket, etc.
    profile = Column(JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "preferences": self.preferences or {},
            "profile": self.profile or {},
        }


class Representative(Base):
    """Member of Congress."""

    __tablename__ = "representatives"

    bioguide_id = Column(String(20), primary_key=True)
    govtrack_id = Column(Integer)
    full_name = Column(String(200))
    first_name = Column(String(100))
    last_name = Column(String(100))
    party = Column(String(50))
    state = Column(String(50))
    district = Column(Integer)
    chamber = Column(String(10))  # house or senate

    image_url = Column(String(500))
    office_address = Column(Text)
    phone = Column(String(50))
    website = Column(String(500))
    contact_form = Column(String(500))

    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "bioguide_id": self.bioguide_id,
            "govtrack_id": self.govtrack_id,
            "full_name": self.full_name,
            "party": self.party,
            "state": self.state,
            "district": self.district,
            "chamber": self.chamber,
            "image_url": self.image_url,
            "office_address": self.office_address,
            "phone": self.phone,
            "website": self.website,
            "contact_form": self.contact_form,
        }


class TrackedBill(Base):
    """A user following a bill."""

    __tablename__ = "user_tracked_bills"
    __table_args__ = (UniqueConstraint("user_id", "bill_id", name="uq_user_bill"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    bill_id = Column(String(50), ForeignKey("bills.id"), nullable=False)

    notification_settings = Column(JSON)
    user_notes = Column(Text)
    user_tags = Column(JSON, default=list)

    tracked_at = Column(DateTime, default=datetime.utcnow)
    last_viewed = Column(DateTime)
    view_count = Column(Integer, default=0)

    def tracking_dict(self) -> dict:
        return {
            "tracked_at": _isoformat(self.tracked_at),
            "notification_settings": self.notification_settings,
            "user_notes": self.user_notes,
            "user_tags": self.user_tags or [],
            "view_count": self.view_count or 0,
            "last_viewed": _isoformat(self.last_viewed),
        }


class GeneratedContent(Base):
    """AI-generated analysis, audio or video tied to a bill or topic."""

    __tablename__ = "generated_content"

    id = Column(String(200), primary_key=True)
    user_id = Column(String(64))
    content_type = Column(String(20), nullable=False)
    source_type = Column(String(20), nullable=False)
    source_id = Column(String(200), nullable=False)
    generator = Column(String(50))
    generation_params = Column(JSON)

    content_url = Column(Text)  # audio data URLs can be large
    content_data = Column(JSON)
    title = Column(Text)
    description = Column(Text)
    duration = Column(Integer)
    status = Column(String(20))

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "content_type": self.content_type,
            "source_type": self.source_type,
            "source_id": self.source_id,
            "generator": self.generator,
            "generation_params": self.generation_params,
            "content_url": self.content_url,
            "content_data": self.content_data,
            "title": self.title,
            "description": self.description,
            "duration": self.duration,
            "status": self.status,
            "created_at": _isoformat(self.created_at),
        }


class BillSubject(Base):
    """Legislative subject or policy area used for filtering."""

    __tablename__ = "bill_subjects"

    id = Column(String(200), primary_key=True)  # slug; policy areas prefixed "policy-"
    name = Column(String(200), nullable=False)
    type = Column(String(20), nullable=False)  # legislative or policy
    count = Column(Integer, default=0)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "type": self.type, "count": self.count or 0}


class BillTag(Base):
    """Subject assigned to a bill with a 0-100 confidence score."""

    __tablename__ = "bill_tags"
    __table_args__ = (UniqueConstraint("bill_id", "subject_id", name="uq_bill_subject"),)

    id = Column(Integer, primary_key=True)
    bill_id = Column(String(50), ForeignKey("bills.id"), nullable=False, index=True)
    subject_id = Column(String(200), ForeignKey("bill_subjects.id"), nullable=False, index=True)
    confidence_score = Column(Integer, nullable=False)
    source = Column(String(20), nullable=False, default=TagSource.AI.value)
    # {"accurate": bool | None, "feedback_count": int, "last_feedback": iso timestamp}
    user_feedback = Column(JSON)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_id": self.bill_id,
            "subject_id": self.subject_id,
            "confidence_score": self.confidence_score,
            "source": self.source,
            "user_feedback": self.user_feedback,
        }


class UserActivity(Base):
    """User activity log entry."""

    __tablename__ = "user_activities"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    activity_type = Column(String(50), nullable=False)
    target_id = Column(String(200))
    target_type = Column(String(50))
    details = Column(JSON)

    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "activity_type": self.activity_type,
            "target_id": self.target_id,
            "target_type": self.target_type,
            "details": self.details,
            "created_at": _isoformat(self.created_at),
        }


class Notification(Base):
    """In-app notification for a user."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False)
    type = Column(String(20), nullable=False)
    title = Column(Text, nullable=False)
    message = Column(Text)
    data = Column(JSON)
    read = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "read": bool(self.read),
            "timestamp": _isoformat(self.created_at),
        }


_engine = None
_engine_url = None


def get_engine():
    """Create database engine, reused while DATABASE_URL is unchanged."""
    global _engine, _engine_url
    config = get_config()
    if _engine is None or _engine_url != config.database_url:
        kwargs = {}
        if config.database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if config.database_url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise each session sees an empty database
                kwargs["poolclass"] = StaticPool
        _engine = create_engine(config.database_url, echo=False, **kwargs)
        _engine_url = config.database_url
    return _engine


def reset_engine():
    """Dispose the cached engine."""
    global _engine, _engine_url
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _engine_url = None


def get_session():
    """Create database session."""
    engine = get_engine()
    Session = sessionmaker(bind=engine, expire_on_commit=False)
    return Session()


def init_db():
    """Initialize database tables."""
    engine = get_engine()
    Base.metadata.create_all(engine)
    log.info("Database initialized")
