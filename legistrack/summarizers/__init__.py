"""AI generation modules using Claude."""

from legistrack.summarizers.llm import LLMService, clean_json_response, get_llm_service

__all__ = [
    "LLMService",
    "clean_json_response",
    "get_llm_service",
]
