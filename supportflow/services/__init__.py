"""
Business Logic Services

- llm_service: chat completion wrapper
- analysis_pipeline: classification of newly created tickets
- reply_suggestions: on-demand reply drafts
"""
from .llm_service import LLMService

__all__ = [
    "LLMService",
]
