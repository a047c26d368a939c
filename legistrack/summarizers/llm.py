"""Claude-backed analysis, podcast scripts, chat and comparisons for bills."""

import json
from datetime import datetime
from typing import Any, Iterable, Optional

import anthropic
import structlog
from tenacity import RetryError, Retrying, stop_after_attempt, wait_incrementing

from legistrack.config import get_config
from legistrack.exceptions import GenerationError, LLMUnavailableError, UpstreamAPIError
from legistrack.models.database import Bill, ContentStatus, ContentType, GeneratedContent, get_session
from legistrack.summarizers import prompts

log = structlog.get_logger()


def clean_json_response(text: str) -> str:
    """Strip a markdown code fence wrapped around a JSON payload."""
    cleaned = (text or "").strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[len("```json"):]
    elif cleaned.startswith("```"):
        cleaned = cleaned[len("```"):]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-len("```")]
    return cleaned.strip()


def comprehensive_analysis_id(bill_id: str) -> str:
    return f"comprehensive-analysis-{bill_id}"


def load_comprehensive_analysis(bill_id: str, user_id: Optional[str] = None) -> Optional[dict]:
    """Return the stored comprehensive analysis, preferring the user's own copy."""
    session = get_session()
    try:
        query = session.query(GeneratedContent).filter(
            GeneratedContent.source_id == bill_id,
            GeneratedContent.content_type == ContentType.ANALYSIS.value,
        )
        row = None
        if user_id:
            row = query.filter(GeneratedContent.user_id == user_id).first()
        if row is None:
            row = query.filter(GeneratedContent.user_id.is_(None)).first()
        return row.content_data if row else None
    finally:
        session.close()


class LLMService:
    """Generates bill content with the Anthropic Messages API."""

    def __init__(self, client: Optional[anthropic.Anthropic] = None, retry_delay: Optional[float] = None):
        self.config = get_config()
        if client is None and self.config.anthropic_api_key:
            client = anthropic.Anthropic(api_key=self.config.anthropic_api_key)
        self.client = client
        self.retry_delay = self.config.llm_retry_delay if retry_delay is None else retry_delay

    def is_available(self) -> bool:
        return self.client is not None

    def _require_client(self):
        if not self.is_available():
            raise LLMUnavailableError("Anthropic API key not configured")

    def _complete(self, prompt: str, system: str, temperature: float,
                  max_tokens: Optional[int] = None, history: Iterable[dict] = ()) -> str:
        self._require_client()
        messages = [{"role": m["role"], "content": m["content"]} for m in history]
        messages.append({"role": "user", "content": prompt})

        try:
            response = self.client.messages.create(
                model=self.config.llm_model,
                max_tokens=max_tokens or self.config.max_analysis_tokens,
                system=system,
                temperature=temperature,
                messages=messages,
            )
        except anthropic.APIStatusError as e:
            log.error("Anthropic API error", status=e.status_code, error=str(e))
            raise UpstreamAPIError(f"Anthropic API error: {e.message}", status_code=e.status_code) from e
        except anthropic.APIError as e:
            log.error("Anthropic API unreachable", error=str(e))
            raise UpstreamAPIError(f"Anthropic API error: {e}") from e
        if not response.content:
            raise GenerationError("No content in LLM response")
        return response.content[0].text.strip()

    def _complete_json(self, prompt: str, system: str, temperature: float) -> Any:
        text = self._complete(prompt, system, temperature)
        try:
            return json.loads(clean_json_response(text))
        except json.JSONDecodeError as e:
            log.error("Failed to parse LLM response as JSON", error=str(e), response=text[:200])
            raise GenerationError(f"Failed to parse AI response: {e}") from e

    def _update_bill(self, bill_id: str, **columns):
        session = get_session()
        try:
            bill = session.get(Bill, bill_id)
            if bill is None:
                log.warning("Bill not found for update", bill_id=bill_id)
                return
            for name, value in columns.items():
                setattr(bill, name, value)
            bill.updated_at = datetime.utcnow()
            session.commit()
        except Exception as e:
            session.rollback()
            log.error("Failed to save generated content to bill", bill_id=bill_id, error=str(e))
            raise
        finally:
            session.close()

    def generate_bill_analysis(self, bill: Bill, user_context: Optional[dict] = None) -> dict:
        """Generate and store the structured analysis for a bill.

        Args:
            bill: Bill to analyze
            user_context: Optional location/interests/demographics of the reader

        Returns:
            Analysis dict with summary, keyProvisions, impactAssessment and passagePrediction
        """
        self._require_client()
        prompt = prompts.bill_analysis_prompt(bill, user_context)
        attempts = self.config.llm_max_retries

        try:
            for attempt in Retrying(
                stop=stop_after_attempt(attempts),
                wait=wait_incrementing(start=self.retry_delay, increment=self.retry_delay),
            ):
                with attempt:
                    number = attempt.retry_state.attempt_number
                    log.info("Generating bill analysis", bill_id=bill.id, attempt=number)
                    analysis = self._complete_json(prompt, prompts.ANALYST_SYSTEM, temperature=0.2)
        except RetryError as e:
            cause = e.last_attempt.exception()
            log.error("Bill analysis failed", bill_id=bill.id, attempts=attempts, error=str(cause))
            raise GenerationError(
                f"Failed to generate AI analysis after {attempts} attempts: {cause}"
            ) from cause

        analysis["generated_at"] = datetime.utcnow().isoformat()
        self._update_bill(bill.id, ai_analysis=analysis)
        log.info("Bill analysis saved", bill_id=bill.id)
        return analysis

    def generate_comprehensive_analysis(self, bill: Bill, user_id: Optional[str] = None) -> dict:
        log.info("Generating comprehensive analysis", bill_id=bill.id)
        analysis = self._complete_json(
            prompts.comprehensive_analysis_prompt(bill), prompts.POLICY_ANALYST_SYSTEM, temperature=0.3
        )
        analysis["generated_at"] = datetime.utcnow().isoformat()
        self.save_comprehensive_analysis(bill.id, analysis, user_id=user_id)
        return analysis

    def save_comprehensive_analysis(self, bill_id: str, analysis: dict, user_id: Optional[str] = None):
        """Upsert the comprehensive analysis row for a bill."""
        session = get_session()
        content_id = comprehensive_analysis_id(bill_id)
        try:
            row = session.get(GeneratedContent, content_id)
            if row is None:
                row = GeneratedContent(id=content_id)
                session.add(row)
            row.user_id = user_id
            row.content_type = ContentType.ANALYSIS.value
            row.source_type = "bill"
            row.source_id = bill_id
            row.generator = "llm"
            row.generation_params = {"billId": bill_id, "model": self.config.llm_model, "type": "comprehensive"}
            row.content_data = analysis
            row.title = f"Comprehensive Analysis: {bill_id}"
            row.description = "AI-generated comprehensive analysis"
            row.status = ContentStatus.COMPLETED.value
            row.updated_at = datetime.utcnow()
            session.commit()
            log.info("Comprehensive analysis saved", bill_id=bill_id)
        except Exception as e:
            session.rollback()
            log.error("Failed to save comprehensive analysis", bill_id=bill_id, error=str(e))
            raise
        finally:
            session.close()

    def get_comprehensive_analysis(self, bill_id: str, user_id: Optional[str] = None) -> Optional[dict]:
        return load_comprehensive_analysis(bill_id, user_id)

    def generate_podcast_overview(self, bill: Bill) -> str:
        analysis = self.get_comprehensive_analysis(bill.id)
        if not analysis:
            raise GenerationError(f"No comprehensive analysis found for bill {bill.id}")

        log.info("Generating podcast overview", bill_id=bill.id)
        overview = self._complete(
            prompts.podcast_overview_prompt(analysis, fallback_summary=bill.summary),
            prompts.PODCAST_SYSTEM,
            temperature=0.7,
            max_tokens=self.config.max_podcast_tokens,
        )
        self._update_bill(bill.id, podcast_overview=overview)
        return overview

    def generate_full_text_summary(self, bill: Bill) -> str:
        log.info("Generating full text summary", bill_id=bill.id)
        summary = self._complete(prompts.full_text_summary_prompt(bill), prompts.ANALYST_SYSTEM, temperature=0.3)
        self._update_bill(bill.id, summary=summary)
        return summary

    def generate_chat_response(self, question: str, bill: Bill, history: Iterable[dict] = ()) -> str:
        if not (question or "").strip():
            raise ValueError("Question must not be empty")
        return self._complete(
            prompts.chat_prompt(question, bill), prompts.CHAT_SYSTEM, temperature=0.7, history=history
        )

    def generate_follow_up_questions(self, bill: Bill) -> list[str]:
        """Suggest up to five questions about a bill, or the default list on failure."""
        if not self.is_available():
            return list(prompts.DEFAULT_FOLLOW_UP_QUESTIONS)

        try:
            questions = self._complete_json(
                prompts.follow_up_questions_prompt(bill), prompts.ASSISTANT_SYSTEM, temperature=0.7
            )
        except Exception as e:
            log.warning("Failed to generate follow-up questions", bill_id=bill.id, error=str(e))
            return list(prompts.DEFAULT_FOLLOW_UP_QUESTIONS)

        if not isinstance(questions, list):
            return list(prompts.DEFAULT_FOLLOW_UP_QUESTIONS)
        cleaned = [str(q) for q in questions if q]
        return cleaned[:5] or list(prompts.DEFAULT_FOLLOW_UP_QUESTIONS)

    def generate_personalized_impact(self, bill: Bill, user_profile: dict) -> dict:
        impact = self._complete_json(
            prompts.personalized_impact_prompt(bill, user_profile), prompts.ANALYST_SYSTEM, temperature=0.2
        )
        score = impact.get("relevanceScore", 0)
        try:
            score = max(0, min(100, int(score)))
        except (TypeError, ValueError):
            score = 0
        return {
            "personalImpact": impact.get("personalImpact", ""),
            "relevanceScore": score,
            "keyPoints": impact.get("keyPoints") or [],
            "recommendedAction": impact.get("recommendedAction", ""),
        }

    def generate_bill_tags(self, bill: Bill, subjects: list[dict]) -> list[dict]:
        """Ask the model which taxonomy subjects apply to a bill, with confidence scores."""
        log.info("Generating bill tags", bill_id=bill.id, subjects=len(subjects))
        prompt = prompts.tagging_prompt(
            bill, subjects, max_tags=self.config.tag_max_per_bill, min_confidence=self.config.tag_min_confidence
        )
        tags = self._complete_json(prompt, prompts.TAGGING_SYSTEM, temperature=0.2)
        if not isinstance(tags, list):
            raise GenerationError("Tag response is not a JSON array")
        return [t for t in tags if isinstance(t, dict)]

    def generate_bill_comparison(self, bills: list[Bill]) -> dict:
        if len(bills) < 2:
            raise ValueError("At least two bills are required for comparison")
        log.info("Comparing bills", bill_ids=[b.id for b in bills])
        return self._complete_json(prompts.comparison_prompt(bills), prompts.ANALYST_SYSTEM, temperature=0.2)


def get_llm_service() -> Optional[LLMService]:
    """Get LLM service if API key is configured."""
    service = LLMService()
    if not service.is_available():
        log.warning("Anthropic API key not configured, AI features disabled")
        return None
    return service
