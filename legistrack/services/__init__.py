"""Service layer over the database and third-party APIs."""

from legistrack.services.analytics import AnalyticsService
from legistrack.services.batch_update import BillBatchUpdateService
from legistrack.services.bills import BillSearchParams, BillService, Page
from legistrack.services.podcasts import PodcastOverviewService
from legistrack.services.recommendations import RecommendationService
from legistrack.services.representatives import RepresentativeService
from legistrack.services.summaries import BillSummaryService
from legistrack.services.tagging import TaggingService
from legistrack.services.timeline import TimelineService
from legistrack.services.tracking import TrackingService
from legistrack.services.users import UserService
from legistrack.services.voting import VotingService

__all__ = [
    "AnalyticsService",
    "BillBatchUpdateService",
    "BillSearchParams",
    "BillService",
    "Page",
    "PodcastOverviewService",
    "RecommendationService",
    "RepresentativeService",
    "BillSummaryService",
    "TaggingService",
    "TimelineService",
    "TrackingService",
    "UserService",
    "VotingService",
]
