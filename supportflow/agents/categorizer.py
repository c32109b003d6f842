"""
Ticket Categorizer - model-backed classification

Builds the classification prompt, calls the LLM in JSON mode and parses the
answer into an AnalysisResult. Any failure surfaces as ExternalServiceError
or MalformedResponseError so the caller can switch to the keyword fallback.
"""
import json
from typing import Any, Dict, List, Optional

from supportflow.config import get_settings
from supportflow.exceptions import MalformedResponseError
from supportflow.models.schemas import (
    CATEGORIES,
    PRIORITIES,
    AnalysisResult,
    AnalysisSource,
    Priority,
    TicketCategory,
)
from supportflow.services.llm_service import LLMService
from supportflow.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

DEFAULT_MODEL_CONFIDENCE = 0.8

CATEGORIZATION_SYSTEM_PROMPT = f"""You are a customer support triage assistant.
Classify the ticket and respond with ONLY a JSON object with these fields:
- "category": one of {json.dumps(CATEGORIES)}
- "priority": one of {json.dumps(PRIORITIES)}
- "tags": array of short lowercase strings describing the issue
- "confidence": number between 0 and 1

Use "urgent" only for outages, security problems or explicit urgency."""


def build_categorization_prompt(subject: str, description: str) -> str:
    return f"Subject: {subject}\n\nDescription:\n{description}"


def strip_code_fence(text: str) -> str:
    """Remove a ```json ... ``` wrapper some models add despite JSON mode"""
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def load_json_object(raw: Optional[str]) -> Dict[str, Any]:
    """
    Decode model output that must be a JSON object

    Raises:
        MalformedResponseError: Empty, invalid JSON or not an object
    """
    if not raw or not raw.strip():
        raise MalformedResponseError("Empty response from model")

    try:
        data = json.loads(strip_code_fence(raw))
    except json.JSONDecodeError as e:
        raise MalformedResponseError(f"Invalid JSON from model: {e}") from e

    if not isinstance(data, dict):
        raise MalformedResponseError(f"Expected JSON object, got {type(data).__name__}")

    return data


def _clamp_confidence(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return DEFAULT_MODEL_CONFIDENCE
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return DEFAULT_MODEL_CONFIDENCE
    return min(max(confidence, 0.0), 1.0)


def _normalize_tags(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    tags: List[str] = []
    for tag in value:
        if isinstance(tag, str) and tag.strip() and tag.strip() not in tags:
            tags.append(tag.strip())
    return tags


def parse_analysis(raw: Optional[str]) -> AnalysisResult:
    """
    Parse the categorization answer

    category and priority must be present as keys; null or unknown values
    fall back to "General Inquiry" / "medium".

    Raises:
        MalformedResponseError: Unusable response
    """
    data = load_json_object(raw)

    missing = [key for key in ("category", "priority") if key not in data]
    if missing:
        raise MalformedResponseError(f"Missing required fields: {', '.join(missing)}")

    category = data.get("category")
    if category not in CATEGORIES:
        if category is not None:
            logger.warning(f"Unknown category from model: {category!r}")
        category = TicketCategory.GENERAL_INQUIRY.value

    priority = data.get("priority")
    if isinstance(priority, str):
        priority = priority.lower()
    if priority not in PRIORITIES:
        priority = Priority.MEDIUM.value

    return AnalysisResult(
        category=category,
        priority=priority,
        tags=_normalize_tags(data.get("tags")),
        confidence=_clamp_confidence(data.get("confidence")),
        source=AnalysisSource.MODEL
    )


class TicketCategorizer:
    """Model-backed ticket classifier"""

    def __init__(self, llm: Optional[LLMService] = None):
        self.llm = llm or LLMService()

    @property
    def model_version(self) -> str:
        return self.llm.model

    async def classify(self, subject: str, description: str) -> AnalysisResult:
        """
        Classify a ticket with the model

        Raises:
            ExternalServiceError: Model call failed or timed out
            MalformedResponseError: Model answer could not be parsed
        """
        raw = await self.llm.complete(
            CATEGORIZATION_SYSTEM_PROMPT,
            build_categorization_prompt(subject, description),
            temperature=settings.categorization_temperature,
            max_tokens=settings.categorization_max_tokens
        )
        result = parse_analysis(raw)
        logger.info(
            f"Model classification: {result.category} / {result.priority} "
            f"(confidence={result.confidence})"
        )
        return result
