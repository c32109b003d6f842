"""
Classification and drafting agents

- categorizer: model-backed ticket classification
- fallback: keyword classifier used when the model path fails
- reply_suggester: prompt / parse / canned replies for agent drafts
"""
from supportflow.agents.categorizer import TicketCategorizer, parse_analysis
from supportflow.agents.fallback import fallback_classify
from supportflow.agents.reply_suggester import (
    CANNED_SUGGESTIONS,
    build_suggestion_prompt,
    canned_suggestions,
    parse_suggestions,
)

__all__ = [
    "TicketCategorizer",
    "parse_analysis",
    "fallback_classify",
    "CANNED_SUGGESTIONS",
    "build_suggestion_prompt",
    "canned_suggestions",
    "parse_suggestions",
]
