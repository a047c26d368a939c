"""Configuration management for LegisTrack."""

import os
from pathlib import Path
from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load .env from package directory, not CWD
_package_dir = Path(__file__).parent
load_dotenv(_package_dir / ".env")


class Config(BaseModel):
    """Application configuration."""

    # API Keys
    congress_api_key: str = Field(default_factory=lambda: os.getenv("CONGRESS_API_KEY", ""))
    anthropic_api_key: str = Field(default_factory=lambda: os.getenv("ANTHROPIC_API_KEY", ""))
    elevenlabs_api_key: str = Field(default_factory=lambda: os.getenv("ELEVENLABS_API_KEY", ""))
    tavus_api_key: str = Field(default_factory=lambda: os.getenv("TAVUS_API_KEY", ""))

    # Voice / avatar selection
    elevenlabs_voice_id: str = Field(
        default_factory=lambda: os.getenv("ELEVENLABS_VOICE_ID", "56AoDkrOh6qfVPDXZ7Pt")
    )
    tavus_replica_id: str = Field(
        default_factory=lambda: os.getenv("TAVUS_REPLICA_ID", "r6ca16dbe104")
    )

    # Discord notifications for batch runs
    discord_webhook_url: str = Field(default_factory=lambda: os.getenv("DISCORD_WEBHOOK_URL", ""))

    # Database
    database_url: str = Field(
        default_factory=lambda: os.getenv(
            "DATABASE_URL",
            f"sqlite:///{Path(__file__).parent / 'legistrack.db'}"
        )
    )

    # API base URLs
    congress_api_base: str = "https://api.congress.gov/v3"
    elevenlabs_api_base: str = "https://api.elevenlabs.io/v1"
    tavus_api_base: str = "https://tavusapi.com/v2"
    govtrack_api_base: str = "https://www.govtrack.us/api/v2"

    # LLM settings
    llm_model: str = "claude-3-5-sonnet-20241022"
    max_analysis_tokens: int = 4096
    max_podcast_tokens: int = 600
    llm_max_retries: int = 3
    llm_retry_delay: float = 1.0

    # Text-to-speech settings
    elevenlabs_model: str = "eleven_turbo_v2"

    # Cache durations (seconds)
    congress_cache_ttl: int = 10 * 60
    bill_query_cache_ttl: int = 5 * 60
    summary_cache_ttl: int = 30 * 60
    full_text_cache_ttl: int = 30 * 60
    subjects_cache_ttl: int = 24 * 60 * 60
    recommendations_cache_ttl: int = 30 * 60
    representatives_cache_ttl: int = 10 * 60
    audio_cache_ttl: int = 24 * 60 * 60
    video_cache_ttl: int = 30 * 60
    govtrack_cache_ttl: int = 30 * 60

    # Rate limiting and batch pacing (seconds)
    congress_min_request_interval: float = 0.1
    summary_batch_size: int = 5
    summary_batch_delay: float = 0.5
    full_text_batch_size: int = 5
    full_text_batch_delay: float = 0.5
    podcast_batch_size: int = 3
    podcast_batch_delay: float = 2.0
    tagging_batch_size: int = 5
    tagging_bill_delay: float = 0.5
    tagging_batch_delay: float = 2.0

    # Bill tagging
    tag_min_confidence: int = 50
    tag_max_per_bill: int = 10

    # Video polling
    video_poll_interval: float = 5.0
    video_poll_max_attempts: int = 60

    # Share text limit
    share_char_limit: int = 300


def get_config() -> Config:
    """Get application configuration."""
    return Config()
