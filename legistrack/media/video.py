"""Tavus talking-head video briefings."""

import time
from datetime import date, datetime
from typing import Any, Optional

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from legistrack.cache import TTLCache
from legistrack.config import get_config
from legistrack.exceptions import ConfigurationError, GenerationError, UpstreamAPIError
from legistrack.models.database import ContentType, GeneratedContent, get_session

log = structlog.get_logger()

TERMINAL_STATUSES = ("completed", "ready", "failed")

SUMMARY_LIMIT = 400
DEFAULT_BRIEFING_SUMMARY = "This bill is currently being analyzed for its key provisions and potential impact."
MAX_BRIEFING_BILLS = 3
MAX_BRIEFING_VOTES = 2

_STATUS_MESSAGES = {
    401: "Invalid Tavus API key. Please check TAVUS_API_KEY.",
    403: "Access denied. Please verify your Tavus API key permissions.",
    429: "Rate limit exceeded. Please try again later.",
}


def is_valid_video_id(video_id: Any) -> bool:
    return isinstance(video_id, str) and video_id.strip() not in ("", "null", "undefined")


def video_url(video: dict) -> Optional[str]:
    return video.get("stream_url") or video.get("hosted_url") or video.get("download_url")


def bill_briefing_script(title: str, summary: Optional[str], user_name: str = "there") -> str:
    if summary and len(summary) > SUMMARY_LIMIT:
        summary = summary[:SUMMARY_LIMIT] + "..."
    summary = summary or DEFAULT_BRIEFING_SUMMARY

    return (
        f"Hi {user_name}, I'm your legislative policy expert with an important update on a bill you're tracking.\n\n"
        f"Today, I want to brief you on \"{title}\".\n\n"
        f"Here's what you need to know: {summary}\n\n"
        "This legislation could have significant implications, and I'll keep you updated as it progresses "
        "through Congress.\n\n"
        "Thanks for staying engaged with LegisTrack AI. I'm here to help you understand the legislation "
        "that matters to you."
    )


def daily_briefing_script(user_name: str, tracked_bills: list[str], upcoming_votes: list[str],
                          today: Optional[date] = None) -> str:
    today = today or date.today()
    script = (
        f"Good morning {user_name}, I'm your legislative policy expert with your daily briefing "
        f"for {today.strftime('%m/%d/%Y')}."
    )

    if tracked_bills:
        script += "\n\nHere's an update on bills you're tracking:"
        for index, bill in enumerate(tracked_bills[:MAX_BRIEFING_BILLS], start=1):
            script += f"\n{index}. {bill}"
        if len(tracked_bills) > MAX_BRIEFING_BILLS:
            script += f"\n...and {len(tracked_bills) - MAX_BRIEFING_BILLS} more bills have updates."

    if upcoming_votes:
        script += "\n\nUpcoming votes to watch:"
        for index, vote in enumerate(upcoming_votes[:MAX_BRIEFING_VOTES], start=1):
            script += f"\n{index}. {vote}"
        if len(upcoming_votes) > MAX_BRIEFING_VOTES:
            script += f"\n...and {len(upcoming_votes) - MAX_BRIEFING_VOTES} more votes scheduled."

    script += (
        "\n\nCheck your LegisTrack AI dashboard for more details and personalized insights. "
        "I'll be back tomorrow with another update."
    )
    return script


class VideoService:
    """Creates and tracks Tavus videos."""

    def __init__(self, client: Optional[httpx.Client] = None):
        self.config = get_config()
        self.client = client or httpx.Client(timeout=30.0)
        self.cache = TTLCache(self.config.video_cache_ttl, name="videos")

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def is_available(self) -> bool:
        return bool(self.config.tavus_api_key.strip())

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _send(self, method: str, endpoint: str, body: Optional[dict] = None) -> dict:
        response = self.client.request(
            method,
            f"{self.config.tavus_api_base}{endpoint}",
            headers={
                "x-api-key": self.config.tavus_api_key,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            json=body,
        )
        if response.status_code >= 400:
            log.error("Tavus API error", status=response.status_code, endpoint=endpoint)
            message = _STATUS_MESSAGES.get(response.status_code, f"Tavus API error: {response.text}")
            raise UpstreamAPIError(message, status_code=response.status_code)
        return response.json()

    def _request(self, method: str, endpoint: str, body: Optional[dict] = None) -> dict:
        if not self.is_available():
            raise ConfigurationError("Tavus API key not configured")
        try:
            return self._send(method, endpoint, body)
        except httpx.HTTPError as e:
            log.error("Tavus request failed", endpoint=endpoint, error=str(e))
            raise UpstreamAPIError(f"Could not reach Tavus: {e}") from e
        except ValueError as e:
            log.error("Tavus returned invalid JSON", endpoint=endpoint, error=str(e))
            raise UpstreamAPIError(f"Invalid response from Tavus: {e}") from e

    def generate_video(self, script: str, replica_id: Optional[str] = None,
                       metadata: Optional[dict] = None, user_id: Optional[str] = None) -> dict:
        """Start rendering a video and record it for the user."""
        if not (script or "").strip():
            raise ValueError("Script is required for video generation")

        replica = replica_id or self.config.tavus_replica_id
        video = self._request("POST", "/videos", {
            "replica_id": replica,
            "script": script.strip(),
            "video_name": f"Video Briefing - {date.today().strftime('%m/%d/%Y')}",
        })
        if not is_valid_video_id(video.get("video_id")):
            raise GenerationError(f"Invalid video ID received from Tavus API: {video.get('video_id')}")

        log.info("Video requested", video_id=video["video_id"], status=video.get("status"))
        if user_id:
            self._store_video(video, script, replica, metadata or {}, user_id)
            self.cache.invalidate(f"user-videos-{user_id}")
        else:
            log.debug("No user for video, not storing", video_id=video["video_id"])
        return video

    def _store_video(self, video: dict, script: str, replica_id: str, metadata: dict, user_id: str):
        bill_id = metadata.get("bill_id")
        session = get_session()
        try:
            session.add(GeneratedContent(
                id=video["video_id"],
                user_id=user_id,
                content_type=ContentType.VIDEO.value,
                source_type="bill" if bill_id else "topic",
                source_id=bill_id or video["video_id"],
                generator="tavus",
                generation_params={"replica_id": replica_id, "script": script, **metadata},
                content_url=video_url(video),
                content_data=video,
                status=video.get("status"),
            ))
            session.commit()
        except Exception as e:
            session.rollback()
            log.error("Failed to store video", video_id=video["video_id"], error=str(e))
            raise
        finally:
            session.close()

    def _update_video(self, video: dict):
        session = get_session()
        try:
            row = session.get(GeneratedContent, video["video_id"])
            if row is None:
                return
            row.content_url = video_url(video)
            row.content_data = video
            row.status = video.get("status")
            row.updated_at = datetime.utcnow()
            session.commit()
        except Exception as e:
            session.rollback()
            log.warning("Could not update stored video", video_id=video["video_id"], error=str(e))
        finally:
            session.close()

    def get_video_status(self, video_id: str) -> dict:
        if not is_valid_video_id(video_id):
            raise ValueError("Video ID is required and must be a valid string")

        video = self._request("GET", f"/videos/{video_id}")
        if not is_valid_video_id(video.get("video_id")):
            raise GenerationError(f"Invalid video ID in response: {video.get('video_id')}")
        self._update_video(video)
        return video

    def wait_for_video(self, video_id: str, interval: Optional[float] = None,
                       max_attempts: Optional[int] = None) -> dict:
        """Poll until the video reaches a terminal status or attempts run out."""
        interval = self.config.video_poll_interval if interval is None else interval
        max_attempts = max_attempts or self.config.video_poll_max_attempts

        video = {}
        for attempt in range(1, max_attempts + 1):
            video = self.get_video_status(video_id)
            status = video.get("status")
            log.info("Video status", video_id=video_id, status=status, attempt=attempt)
            if status in TERMINAL_STATUSES:
                return video
            if attempt < max_attempts:
                time.sleep(interval)

        log.warning("Video not finished after polling", video_id=video_id, attempts=max_attempts)
        return video

    def get_user_videos(self, user_id: str) -> list[dict]:
        def fetch():
            session = get_session()
            try:
                rows = session.query(GeneratedContent).filter(
                    GeneratedContent.user_id == user_id,
                    GeneratedContent.content_type == ContentType.VIDEO.value,
                    GeneratedContent.generator == "tavus",
                ).order_by(GeneratedContent.created_at.desc()).all()
            finally:
                session.close()

            videos = []
            for row in rows:
                video = dict(row.content_data or {})
                if not is_valid_video_id(video.get("video_id")):
                    continue
                if not video_url(video) and row.content_url:
                    video["stream_url"] = row.content_url
                video["generation_params"] = row.generation_params
                videos.append(video)
            return videos

        return self.cache.get_or_fetch(f"user-videos-{user_id}", fetch)

    def generate_bill_briefing(self, bill_id: str, title: str, summary: Optional[str],
                               user_name: str = "there", user_id: Optional[str] = None) -> dict:
        if not bill_id or not title:
            raise ValueError("Bill ID and title are required for briefing generation")
        return self.generate_video(
            bill_briefing_script(title, summary, user_name),
            metadata={"bill_id": bill_id, "type": "bill_briefing"},
            user_id=user_id,
        )

    def generate_daily_briefing(self, user_name: str = "there", tracked_bills: Optional[list[str]] = None,
                                upcoming_votes: Optional[list[str]] = None,
                                user_id: Optional[str] = None) -> dict:
        return self.generate_video(
            daily_briefing_script(user_name, tracked_bills or [], upcoming_votes or []),
            metadata={"type": "daily_briefing", "date": date.today().isoformat()},
            user_id=user_id,
        )

    def clear_cache(self):
        self.cache.clear()
