from functools import lru_cache

from langchain_groq import ChatGroq

from app.core.config import settings
from app.core.exceptions import ConfigurationError

"""
Language Model (LLM) client configuration.

This module provides the ChatGroq instance used to score interviews. It is
created lazily so the service can start (and report a configuration error per
request) without a GROQ_API_KEY.
"""


@lru_cache(maxsize=1)
def get_scoring_llm() -> ChatGroq:
    """Get or create the ChatGroq client used for interview scoring."""
    if not settings.GROQ_API_KEY:
        raise ConfigurationError("GROQ_API_KEY is not configured")
    return ChatGroq(
        model=settings.SCORING_MODEL,
        temperature=settings.SCORING_TEMPERATURE,
        api_key=settings.GROQ_API_KEY,
        max_tokens=settings.SCORING_MAX_TOKENS,
    )
