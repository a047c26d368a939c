"""Audio and video generation for bill content."""

from legistrack.media.speech import SpeechService
from legistrack.media.video import VideoService

__all__ = [
    "SpeechService",
    "VideoService",
]
