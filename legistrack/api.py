"""JSON HTTP API over the LegisTrack services."""

from datetime import date, datetime
from functools import cached_property
from typing import Literal, Optional

import structlog
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from legistrack.exceptions import (
    ConfigurationError, GenerationError, InvalidBillIdError, LegisTrackError,
    LLMUnavailableError, NotFoundError, UpstreamAPIError,
)
from legistrack.formatters import contact_message, share_links
from legistrack.media import SpeechService, VideoService
from legistrack.models.database import Bill, Representative, get_session
from legistrack.notifications import NotificationService
from legistrack.services import (
    AnalyticsService, BillSearchParams, BillService, RecommendationService,
    RepresentativeService, TaggingService, TimelineService, TrackingService, UserService,
    VotingService,
)
from legistrack.summarizers import LLMService

log = structlog.get_logger()


class Services:
    """Service instances shared by the request handlers."""

    def __init__(self, **overrides):
        for name, service in overrides.items():
            setattr(self, name, service)

    @cached_property
    def bills(self) -> BillService:
        return BillService()

    @cached_property
    def llm(self) -> LLMService:
        return LLMService()

    @cached_property
    def tracking(self) -> TrackingService:
        return TrackingService(fetcher=self.bills.fetcher, analytics=self.analytics)

    @cached_property
    def analytics(self) -> AnalyticsService:
        return AnalyticsService()

    @cached_property
    def recommendations(self) -> RecommendationService:
        return RecommendationService(bills=self.bills)

    @cached_property
    def users(self) -> UserService:
        return UserService()

    @cached_property
    def representatives(self) -> RepresentativeService:
        return RepresentativeService()

    @cached_property
    def notifications(self) -> NotificationService:
        return NotificationService()

    @cached_property
    def voting(self) -> VotingService:
        return VotingService(api=self.bills.fetcher.api)

    @cached_property
    def timeline(self) -> TimelineService:
        return TimelineService(fetcher=self.bills.fetcher)

    @cached_property
    def tagging(self) -> TaggingService:
        return TaggingService(llm=self.llm)

    @cached_property
    def speech(self) -> SpeechService:
        return SpeechService()

    @cached_property
    def video(self) -> VideoService:
        return VideoService()


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    question: str
    history: list[ChatMessage] = Field(default_factory=list)


class CompareRequest(BaseModel):
    bill_ids: list[str]


class TrackRequest(BaseModel):
    notification_settings: Optional[dict] = None
    notes: Optional[str] = None
    tags: list[str] = Field(default_factory=list)


class TagFeedbackRequest(BaseModel):
    accurate: bool


class BriefingRequest(BaseModel):
    bill_id: Optional[str] = None
    user_name: str = "there"
    user_id: Optional[str] = None
    tracked_bills: list[str] = Field(default_factory=list)
    upcoming_votes: list[str] = Field(default_factory=list)


def status_for(exc: Exception) -> int:
    """HTTP status for a domain exception."""
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (InvalidBillIdError, ValueError)):
        return 400
    if isinstance(exc, (LLMUnavailableError, ConfigurationError)):
        return 503
    if isinstance(exc, (UpstreamAPIError, GenerationError)):
        return 502
    return 500


async def _handle_error(request: Request, exc: Exception) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        log.error("Request failed", path=request.url.path, status=status, error=str(exc))
    else:
        log.info("Request rejected", path=request.url.path, status=status, error=str(exc))
    return JSONResponse(status_code=status, content={"error": str(exc)})


def get_services(request: Request) -> Services:
    return request.app.state.services


def _require_bill(services: Services, bill_id: str) -> Bill:
    bill = services.bills.get_bill(bill_id)
    if bill is None:
        raise NotFoundError(f"Bill not found: {bill_id}")
    return bill


def _load_representative(bioguide_id: Optional[str]) -> Optional[Representative]:
    if not bioguide_id:
        return None
    session = get_session()
    try:
        representative = session.get(Representative, bioguide_id)
    finally:
        session.close()
    if representative is None:
        raise NotFoundError(f"Representative not found: {bioguide_id}")
    return representative


def create_app(services: Optional[Services] = None) -> FastAPI:
    app = FastAPI(title="LegisTrack", version="0.1.0")
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_credentials=True,
                       allow_methods=["*"], allow_headers=["*"])
    app.state.services = services or Services()
    app.add_exception_handler(LegisTrackError, _handle_error)
    app.add_exception_handler(ValueError, _handle_error)

    @app.get("/api/health")
    def health(s: Services = Depends(get_services)):
        return {
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "services": {
                "llm": s.llm.is_available(),
                "speech": s.speech.is_available(),
                "video": s.video.is_available(),
            },
        }

    # Bills

    @app.get("/api/bills")
    def list_bills(
        query: Optional[str] = None,
        congress: Optional[int] = None,
        bill_type: Optional[str] = None,
        status: Optional[str] = None,
        sponsor_state: Optional[str] = None,
        sponsor_party: Optional[str] = None,
        subjects: list[str] = Query(default=[]),
        introduced_after: Optional[date] = None,
        introduced_before: Optional[date] = None,
        page: int = 1,
        limit: int = 20,
        sort: str = "introduced_date",
        order: str = "desc",
        s: Services = Depends(get_services),
    ):
        params = BillSearchParams(
            query=query, congress=congress, bill_type=bill_type, status=status,
            sponsor_state=sponsor_state, sponsor_party=sponsor_party, subjects=subjects,
            introduced_after=introduced_after, introduced_before=introduced_before,
            page=page, limit=limit, sort=sort, order=order,
        )
        return s.bills.get_bills(params).to_dict()

    @app.get("/api/bills/trending")
    def trending_bills(limit: int = 10, s: Services = Depends(get_services)):
        return {"data": s.bills.get_trending_bills(limit)}

    @app.get("/api/bills/search")
    def search_bills(q: str, congress: Optional[int] = None, bill_type: Optional[str] = None,
                     subjects: list[str] = Query(default=[]), page: int = 1, limit: int = 20,
                     s: Services = Depends(get_services)):
        if not q.strip():
            raise ValueError("Search query must not be empty")
        return s.bills.search_bills(q, congress=congress, bill_type=bill_type, subjects=subjects,
                                    page=page, limit=limit)

    @app.post("/api/bills/compare")
    def compare_bills(body: CompareRequest, s: Services = Depends(get_services)):
        bills = [_require_bill(s, bill_id) for bill_id in body.bill_ids]
        return s.llm.generate_bill_comparison(bills)

    @app.get("/api/bills/{bill_id}")
    def get_bill(bill_id: str, user_id: Optional[str] = None, s: Services = Depends(get_services)):
        bill = _require_bill(s, bill_id)
        if user_id:
            s.tracking.record_bill_view(user_id, bill_id)
        data = bill.to_dict()
        analysis = s.llm.get_comprehensive_analysis(bill_id, user_id)
        if analysis:
            data["comprehensive_analysis"] = analysis
        return data

    @app.get("/api/bills/{bill_id}/similar")
    def similar_bills(bill_id: str, limit: int = 5, s: Services = Depends(get_services)):
        _require_bill(s, bill_id)
        return {"data": s.recommendations.get_similar_bills(bill_id, limit)}

    @app.get("/api/bills/{bill_id}/contact-message")
    def get_contact_message(bill_id: str, bioguide_id: Optional[str] = None,
                            position: Optional[str] = None, s: Services = Depends(get_services)):
        bill = _require_bill(s, bill_id)
        representative = _load_representative(bioguide_id)
        return {"message": contact_message(bill, representative, position)}

    @app.get("/api/bills/{bill_id}/share")
    def share_bill(bill_id: str, message: Optional[str] = None, s: Services = Depends(get_services)):
        return share_links(_require_bill(s, bill_id), message)

    @app.post("/api/bills/{bill_id}/analysis")
    def analyze_bill(bill_id: str, comprehensive: bool = False, user_id: Optional[str] = None,
                     s: Services = Depends(get_services)):
        bill = _require_bill(s, bill_id)
        if comprehensive:
            return s.llm.generate_comprehensive_analysis(bill, user_id=user_id)
        user_context = s.users.get_user_context(user_id) if user_id else None
        return s.llm.generate_bill_analysis(bill, user_context)

    @app.post("/api/bills/{bill_id}/podcast-overview")
    def podcast_overview(bill_id: str, s: Services = Depends(get_services)):
        bill = _require_bill(s, bill_id)
        return {"bill_id": bill_id, "podcast_overview": s.llm.generate_podcast_overview(bill)}

    @app.post("/api/bills/{bill_id}/audio")
    def bill_audio(bill_id: str, user_id: Optional[str] = None, s: Services = Depends(get_services)):
        bill = _require_bill(s, bill_id)
        return s.speech.generate_bill_podcast_audio(bill, user_id=user_id)

    @app.post("/api/bills/{bill_id}/chat")
    def chat(bill_id: str, body: ChatRequest, s: Services = Depends(get_services)):
        bill = _require_bill(s, bill_id)
        history = [m.model_dump() for m in body.history]
        return {"response": s.llm.generate_chat_response(body.question, bill, history)}

    @app.get("/api/bills/{bill_id}/follow-up-questions")
    def follow_up_questions(bill_id: str, s: Services = Depends(get_services)):
        return {"questions": s.llm.generate_follow_up_questions(_require_bill(s, bill_id))}

    @app.get("/api/bills/{bill_id}/timeline")
    def bill_timeline(bill_id: str, s: Services = Depends(get_services)):
        return s.timeline.get_bill_timeline(bill_id)

    @app.get("/api/bills/{bill_id}/cosponsors")
    def bill_cosponsors(bill_id: str, s: Services = Depends(get_services)):
        return {"data": s.timeline.get_bill_cosponsors(bill_id)}

    @app.get("/api/bills/{bill_id}/committees")
    def bill_committees(bill_id: str, s: Services = Depends(get_services)):
        return {"data": s.timeline.get_bill_committees(bill_id)}

    @app.get("/api/bills/{bill_id}/votes")
    def bill_votes(bill_id: str, s: Services = Depends(get_services)):
        return s.voting.get_bill_votes(bill_id)

    @app.get("/api/bills/{bill_id}/tags")
    def bill_tags(bill_id: str, min_confidence: int = 0, s: Services = Depends(get_services)):
        return {"data": s.tagging.get_tags_for_bill(bill_id, min_confidence)}

    @app.post("/api/bills/{bill_id}/tags")
    def generate_bill_tags(bill_id: str, s: Services = Depends(get_services)):
        _require_bill(s, bill_id)
        return {"data": s.tagging.tag_bill(bill_id)}

    @app.post("/api/tags/{tag_id}/feedback")
    def tag_feedback(tag_id: int, body: TagFeedbackRequest, s: Services = Depends(get_services)):
        return s.tagging.submit_tag_feedback(tag_id, body.accurate)

    @app.get("/api/subjects/{subject_id}/bills")
    def subject_bills(subject_id: str, min_confidence: int = 70, limit: int = 20,
                      s: Services = Depends(get_services)):
        return {"data": s.tagging.get_bills_by_subject(subject_id, min_confidence, limit)}

    @app.get("/api/subjects")
    def subjects(s: Services = Depends(get_services)):
        return {"data": s.bills.get_all_subjects()}

    # Users

    @app.get("/api/users/{user_id}/tracked")
    def tracked_bills(user_id: str, s: Services = Depends(get_services)):
        return {"data": s.tracking.get_tracked_bills(user_id)}

    @app.post("/api/users/{user_id}/tracked/{bill_id}", status_code=201)
    def track_bill(user_id: str, bill_id: str, body: Optional[TrackRequest] = None,
                   s: Services = Depends(get_services)):
        body = body or TrackRequest()
        return s.tracking.track_bill(user_id, bill_id, body.notification_settings, body.notes, body.tags)

    @app.delete("/api/users/{user_id}/tracked/{bill_id}")
    def untrack_bill(user_id: str, bill_id: str, s: Services = Depends(get_services)):
        if not s.tracking.untrack_bill(user_id, bill_id):
            raise NotFoundError(f"Bill {bill_id} is not tracked by user {user_id}")
        return {"success": True}

    @app.get("/api/users/{user_id}/recommendations")
    def recommendations(user_id: str, refresh: bool = False, s: Services = Depends(get_services)):
        return {"data": s.recommendations.get_personalized_recommendations(user_id, force_refresh=refresh)}

    @app.get("/api/users/{user_id}/impact/{bill_id}")
    def personalized_impact(user_id: str, bill_id: str, s: Services = Depends(get_services)):
        bill = _require_bill(s, bill_id)
        profile = s.users.get_user_context(user_id)
        if profile is None:
            raise NotFoundError(f"User not found: {user_id}")
        return s.llm.generate_personalized_impact(bill, profile)

    @app.get("/api/users/{user_id}/notifications")
    def notifications(user_id: str, limit: int = 20, unread_only: bool = False,
                      s: Services = Depends(get_services)):
        return {"data": s.notifications.get_user_notifications(user_id, limit, unread_only)}

    @app.get("/api/users/{user_id}/stats")
    def user_stats(user_id: str, s: Services = Depends(get_services)):
        return {
            "engagement": s.analytics.get_user_engagement_stats(user_id),
            "tracking": s.tracking.get_tracking_stats(user_id),
            "profile": s.users.profile_completeness(user_id),
        }

    # Representatives and media

    @app.get("/api/representatives")
    def representatives(state: Optional[str] = None, district: Optional[int] = None,
                        chamber: Optional[str] = None, party: Optional[str] = None,
                        limit: Optional[int] = None, s: Services = Depends(get_services)):
        if state and district:
            return {"data": s.representatives.get_representatives_by_location(state, district)}
        return {"data": s.representatives.get_representatives(state, chamber, party, limit)}

    @app.get("/api/representatives/{bioguide_id}/votes")
    def representative_votes(bioguide_id: str, congress: Optional[int] = None, limit: int = 20,
                             s: Services = Depends(get_services)):
        return s.voting.get_member_voting_record(bioguide_id, congress, limit)

    @app.get("/api/votes/house")
    def house_votes(congress: Optional[int] = None, limit: int = 20, offset: int = 0,
                    s: Services = Depends(get_services)):
        return {"data": s.voting.get_house_votes(congress, limit, offset)}

    @app.get("/api/votes/{vote_id}")
    def vote_details(vote_id: int, s: Services = Depends(get_services)):
        return s.voting.get_vote_details(vote_id)

    @app.get("/api/podcasts/latest")
    def latest_podcasts(user_id: Optional[str] = None, limit: int = 3, s: Services = Depends(get_services)):
        return {"data": s.speech.get_latest_podcast_audios(user_id, limit)}

    @app.post("/api/videos/briefing", status_code=201)
    def video_briefing(body: BriefingRequest, s: Services = Depends(get_services)):
        if body.bill_id:
            bill = _require_bill(s, body.bill_id)
            return s.video.generate_bill_briefing(
                bill.id, bill.short_title or bill.title, bill.summary,
                user_name=body.user_name, user_id=body.user_id,
            )
        return s.video.generate_daily_briefing(
            body.user_name, body.tracked_bills, body.upcoming_votes, user_id=body.user_id
        )

    @app.get("/api/videos/{video_id}")
    def video_status(video_id: str, s: Services = Depends(get_services)):
        return s.video.get_video_status(video_id)

    return app


app = create_app()
