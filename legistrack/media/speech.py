"""ElevenLabs text-to-speech for podcast overviews."""

import base64
import random
import string
import time
from datetime import datetime
from typing import Optional

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from legistrack.cache import TTLCache
from legistrack.config import get_config
from legistrack.exceptions import ConfigurationError, GenerationError, UpstreamAPIError
from legistrack.models.database import (
    Bill, ContentStatus, ContentType, GeneratedContent, get_session,
)

log = structlog.get_logger()

PODCAST_OVERVIEW_SOURCE = "podcast-overview"

VOICE_SETTINGS = {
    "stability": 0.5,
    "similarity_boost": 0.75,
    "style": 0.5,
    "use_speaker_boost": True,
}

# Layer III bitrates in kbps, indexed by the header's bitrate field
_MPEG1_L3_BITRATES = [0, 32, 40, 48, 56, 64, 80, 96, 112, 128, 160, 192, 224, 256, 320]
_MPEG2_L3_BITRATES = [0, 8, 16, 24, 32, 40, 48, 56, 64, 80, 96, 112, 128, 144, 160]

PLACEHOLDER_BILL = {
    "id": PODCAST_OVERVIEW_SOURCE,
    "bill_type": "PODCAST",
    "number": 0,
    "title": "Podcast Overview",
    "congress": 0,
}


def _skip_id3(data: bytes) -> int:
    if len(data) >= 10 and data[:3] == b"ID3":
        size = (data[6] << 21) | (data[7] << 14) | (data[8] << 7) | data[9]
        return 10 + size
    return 0


def estimate_mp3_duration(data: bytes) -> int:
    """Whole seconds of audio, from the first frame header's bitrate. 0 if unknown."""
    start = _skip_id3(data)
    for i in range(start, len(data) - 3):
        if data[i] != 0xFF or (data[i + 1] & 0xE0) != 0xE0:
            continue
        version = (data[i + 1] >> 3) & 0x03
        layer = (data[i + 1] >> 1) & 0x03
        bitrate_index = data[i + 2] >> 4
        if layer != 0x01 or version == 0x01 or bitrate_index in (0, 15):
            continue
        table = _MPEG1_L3_BITRATES if version == 0x03 else _MPEG2_L3_BITRATES
        bitrate = table[bitrate_index] * 1000
        return int((len(data) - i) * 8 / bitrate)
    return 0


def to_data_url(audio: bytes, mime_type: str = "audio/mpeg") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(audio).decode('ascii')}"


def _audio_content_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=13))
    return f"podcast-audio-{int(time.time() * 1000)}-{suffix}"


class SpeechService:
    """Turns podcast overview scripts into stored MP3 audio."""

    def __init__(self, client: Optional[httpx.Client] = None):
        self.config = get_config()
        self.client = client or httpx.Client(timeout=60.0)
        self.cache = TTLCache(self.config.audio_cache_ttl, name="podcast_audio")

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def is_available(self) -> bool:
        return bool(self.config.elevenlabs_api_key.strip())

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _post_speech(self, text: str, voice_id: str) -> bytes:
        response = self.client.post(
            f"{self.config.elevenlabs_api_base}/text-to-speech/{voice_id}",
            headers={"xi-api-key": self.config.elevenlabs_api_key, "Content-Type": "application/json"},
            json={
                "text": text,
                "model_id": self.config.elevenlabs_model,
                "voice_settings": VOICE_SETTINGS,
            },
        )
        if response.status_code >= 400:
            message = f"ElevenLabs API error: {response.status_code}"
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = None
            if isinstance(detail, dict):
                detail = detail.get("message")
            raise UpstreamAPIError(detail or message, status_code=response.status_code)
        return response.content

    def _synthesize(self, text: str, voice_id: str) -> bytes:
        try:
            return self._post_speech(text, voice_id)
        except httpx.HTTPError as e:
            log.error("ElevenLabs request failed", voice_id=voice_id, error=str(e))
            raise UpstreamAPIError(f"Could not reach ElevenLabs: {e}") from e

    def generate_audio(self, text: str, voice_id: Optional[str] = None, bill_id: Optional[str] = None,
                       user_id: Optional[str] = None) -> dict:
        """Synthesize speech and store it as a generated content row.

        Returns:
            Dict with ``id``, ``audio_url`` (a data URL) and ``duration`` in seconds
        """
        if not self.is_available():
            raise ConfigurationError("ElevenLabs API key not configured")
        if not (text or "").strip():
            raise ValueError("Text to synthesize must not be empty")

        voice = voice_id or self.config.elevenlabs_voice_id
        log.info("Generating audio", chars=len(text), voice_id=voice, bill_id=bill_id)
        audio = self._synthesize(text, voice)

        audio_url = to_data_url(audio)
        duration = estimate_mp3_duration(audio)
        content_id = self._store_audio(text, audio_url, duration, voice, bill_id, user_id)
        self.cache.clear()

        log.info("Audio generated", content_id=content_id, bytes=len(audio), duration=duration)
        return {"id": content_id, "audio_url": audio_url, "duration": duration}

    def _store_audio(self, text: str, audio_url: str, duration: int, voice_id: str,
                     bill_id: Optional[str], user_id: Optional[str]) -> str:
        content_id = _audio_content_id()
        suffix_title = f" - {bill_id}" if bill_id else ""
        suffix_description = f" for {bill_id}" if bill_id else ""

        session = get_session()
        try:
            session.add(GeneratedContent(
                id=content_id,
                user_id=user_id,
                content_type=ContentType.AUDIO.value,
                source_type="bill",
                source_id=bill_id or PODCAST_OVERVIEW_SOURCE,
                generator="elevenlabs",
                generation_params={"voice_id": voice_id, "model": self.config.elevenlabs_model},
                content_url=audio_url,
                content_data={"text": text, "duration": duration},
                title=f"Podcast Overview{suffix_title}",
                description=f"Audio version of podcast overview{suffix_description}",
                duration=duration,
                status=ContentStatus.COMPLETED.value,
            ))
            session.commit()
        except Exception as e:
            session.rollback()
            log.error("Failed to store audio", content_id=content_id, error=str(e))
            raise
        finally:
            session.close()
        return content_id

    def generate_bill_podcast_audio(self, bill: Bill, user_id: Optional[str] = None) -> dict:
        if not bill.podcast_overview:
            raise GenerationError(f"Bill {bill.id} does not have a podcast overview")
        return self.generate_audio(bill.podcast_overview, bill_id=bill.id, user_id=user_id)

    def get_latest_podcast_audios(self, user_id: Optional[str] = None, limit: int = 3) -> list[dict]:
        """Newest completed podcast audio, each joined to its bill."""
        def fetch():
            session = get_session()
            try:
                query = session.query(GeneratedContent).filter(
                    GeneratedContent.content_type == ContentType.AUDIO.value,
                    GeneratedContent.source_type == "bill",
                    GeneratedContent.generator == "elevenlabs",
                    GeneratedContent.status == ContentStatus.COMPLETED.value,
                )
                if user_id:
                    query = query.filter(
                        (GeneratedContent.user_id == user_id) | GeneratedContent.user_id.is_(None)
                    )
                else:
                    query = query.filter(GeneratedContent.user_id.is_(None))
                rows = query.order_by(GeneratedContent.created_at.desc()).limit(limit).all()

                bill_ids = [r.source_id for r in rows if r.source_id != PODCAST_OVERVIEW_SOURCE]
                bills = {
                    b.id: b.to_dict()
                    for b in session.query(Bill).filter(Bill.id.in_(bill_ids)).all()
                } if bill_ids else {}
            finally:
                session.close()

            items = []
            for row in rows:
                bill = bills.get(row.source_id, PLACEHOLDER_BILL)
                items.append({
                    "id": row.id,
                    "title": row.title or f"Podcast Overview: {bill['title']}",
                    "description": row.description or f"Audio version of {bill['title']}",
                    "content_url": row.content_url,
                    "duration": row.duration or 0,
                    "created_at": row.created_at.isoformat() if row.created_at else None,
                    "bill": bill,
                })
            return items

        return self.cache.get_or_fetch(f"latest-podcasts-{user_id}-{limit}", fetch)

    def clear_cache(self):
        self.cache.clear()
