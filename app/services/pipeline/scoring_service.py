import logging
import time
from typing import Any, Optional

from langchain_core.messages import HumanMessage, SystemMessage

from app.core.config import settings
from app.core.exceptions import (
    InvalidInputError,
    ScoringFailedError,
    ScoringValidationError,
    UpstreamError,
)
from app.core.llm import get_scoring_llm
from app.core.logger import log_async_execution_time
from app.core.prompts import generate_scoring_prompt, generate_scoring_user_message
from app.schemas.interview import ScoringResult
from app.services.pipeline.llm_parser import parse_json_object
from app.services.pipeline.scoring_validator import validate_scoring_response
from app.services.tools.rate_limiter import RateLimitPolicy, SlidingWindowRateLimiter

logger = logging.getLogger(__name__)


def extract_response_text(response: Any) -> str:
    """
    Pull the text payload out of a chat model response.

    LangChain messages carry either a plain string or a list of content
    blocks; only text blocks are kept.
    """
    content = response.content if hasattr(response, 'content') else response
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return ""


class ScoringService:
    """
    Scores an interview transcript with the LLM and returns a validated result.

    One model call per ``score``, never retried: a failure is terminal for the
    attempt. Parse and validation problems are logged in full and surfaced to
    the caller only as an opaque ``ScoringFailedError``.
    """

    def __init__(
        self,
        rate_limiter: SlidingWindowRateLimiter,
        policy: RateLimitPolicy,
        llm: Optional[Any] = None,
        max_transcript_length: Optional[int] = None,
        max_cv_text_length: Optional[int] = None,
    ):
        self.llm = llm
        self.rate_limiter = rate_limiter
        self.policy = policy
        self.max_transcript_length = max_transcript_length or settings.MAX_TRANSCRIPT_LENGTH
        self.max_cv_text_length = max_cv_text_length or settings.MAX_CV_TEXT_LENGTH
        self._system_prompt = generate_scoring_prompt()

    def _get_llm(self) -> Any:
        # Resolved lazily so bad input is rejected before configuration is consulted
        if self.llm is None:
            self.llm = get_scoring_llm()
        return self.llm

    def validate_cv_text(self, cv_text: Any) -> None:
        """CV checks on their own, so callers can reject before any transcript polling."""
        if cv_text is None:
            return
        if not isinstance(cv_text, str):
            raise InvalidInputError("CV text must be a string")
        if len(cv_text) > self.max_cv_text_length:
            raise InvalidInputError("CV text exceeds maximum length")

    def validate_inputs(self, transcript_text: Any, cv_text: Any) -> None:
        """Local, fast-fail checks. Raises InvalidInputError."""
        if not isinstance(transcript_text, str) or not transcript_text.strip():
            raise InvalidInputError("Interview transcript is required")
        if len(transcript_text) > self.max_transcript_length:
            raise InvalidInputError("Transcript exceeds maximum length")
        self.validate_cv_text(cv_text)

    @log_async_execution_time
    async def score(self, transcript_text: Any, cv_text: Any = None, identity: str = "unknown") -> ScoringResult:
        """
        Score one interview.

        Args:
            transcript_text: Formatted transcript (see ``format_transcript``).
            cv_text: Optional extracted CV text.
            identity: Caller identity the request is charged to.

        Raises:
            RateLimitedError: Scoring budget exhausted.
            InvalidInputError: Missing/oversized/wrongly typed input.
            UpstreamError: The model call itself failed.
            ScoringFailedError: The response could not be turned into a valid result.
        """
        self.rate_limiter.require(self.policy, identity)
        self.validate_inputs(transcript_text, cv_text)
        llm = self._get_llm()

        messages = [
            SystemMessage(content=self._system_prompt),
            HumanMessage(content=generate_scoring_user_message(transcript_text, cv_text)),
        ]

        start = time.perf_counter()
        try:
            response = await llm.ainvoke(messages)
        except Exception as e:
            logger.error(f"Scoring model call failed: {e}", exc_info=True)
            raise UpstreamError(
                f"Scoring model call failed: {type(e).__name__}",
                user_message="Something went wrong while scoring your interview. Please try again.",
            ) from e
        logger.info(
            f"Scoring model responded in {time.perf_counter() - start:.2f}s "
            f"(transcript: {len(transcript_text)} chars, cv: {len(cv_text or '')} chars)"
        )

        response_text = extract_response_text(response)
        if not response_text.strip():
            logger.error("Empty response from scoring model")
            raise ScoringFailedError("Empty response from scoring model")

        try:
            parsed = parse_json_object(response_text)
            return validate_scoring_response(parsed)
        except ScoringValidationError as e:
            logger.error(f"Scoring response rejected: {e.message}")
            if e.details:
                logger.debug(f"Scoring rejection details: {e.details}")
            raise ScoringFailedError(f"Scoring response rejected: {e.message}") from e
