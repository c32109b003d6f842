"""
Keyword Fallback Classifier - used when the model call fails

Pure and deterministic: the same text always yields the same result and
the function never raises.
"""
from typing import List, Optional, Tuple

from supportflow.models.schemas import (
    AnalysisResult,
    AnalysisSource,
    Priority,
    TicketCategory,
)

# (keywords, category, tag, forced priority); first match wins
CATEGORY_RULES: List[Tuple[Tuple[str, ...], TicketCategory, str, Optional[Priority]]] = [
    (("login", "password", "account"), TicketCategory.ACCOUNT_LOGIN, "authentication", None),
    (("payment", "billing", "invoice"), TicketCategory.BILLING_PAYMENTS, "financial", None),
    (("error", "bug", "crash"), TicketCategory.BUG_REPORT, "bug", Priority.HIGH),
    (("feature", "request", "suggest"), TicketCategory.FEATURE_REQUEST, "enhancement", None),
]

URGENT_KEYWORDS = ("urgent", "asap", "critical")

FALLBACK_CONFIDENCE = 0.5


def fallback_classify(text: str) -> AnalysisResult:
    """
    Classify ticket text by keyword matching

    Args:
        text: Subject and description joined by a space (any case)

    Returns:
        AnalysisResult with source=fallback
    """
    text = (text or "").lower()

    category = TicketCategory.GENERAL_INQUIRY
    priority = Priority.MEDIUM
    tags: List[str] = []

    for keywords, rule_category, tag, forced_priority in CATEGORY_RULES:
        if any(kw in text for kw in keywords):
            category = rule_category
            tags.append(tag)
            if forced_priority is not None:
                priority = forced_priority
            break

    # Urgency overrides every category-specific priority
    if any(kw in text for kw in URGENT_KEYWORDS):
        priority = Priority.URGENT

    return AnalysisResult(
        category=category,
        priority=priority,
        tags=tags,
        confidence=FALLBACK_CONFIDENCE,
        source=AnalysisSource.FALLBACK
    )
