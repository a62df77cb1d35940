"""
Transcript retrieval from the conversational-AI provider.

The provider finalizes transcripts asynchronously after a call ends, so a
fetch right after hang-up usually sees an in-progress conversation. The
retriever polls with exponential backoff until the transcript is ready, the
attempt budget runs out, or the source reports a hard error.
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import settings
from app.core.exceptions import (
    ConfigurationError,
    ConversationNotFoundError,
    InvalidInputError,
    TranscriptNotReadyError,
    UpstreamError,
    UpstreamUnavailableError,
)
from app.schemas.interview import TranscriptEntry
from app.services.tools.rate_limiter import RateLimitPolicy, SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

CONVERSATION_ID_PATTERN = re.compile(r'^[A-Za-z0-9_-]{10,50}$')
READY_STATUSES = frozenset({"done", "finished"})


def validate_conversation_id(conversation_id: Any) -> str:
    """Reject ids that could never be valid before anything touches the network."""
    if not isinstance(conversation_id, str) or not CONVERSATION_ID_PATTERN.fullmatch(conversation_id):
        raise InvalidInputError("Invalid conversation ID format")
    return conversation_id


def normalize_entry(raw: dict) -> TranscriptEntry:
    """Map a provider transcript turn to a TranscriptEntry."""
    role = "agent" if raw.get("role") == "agent" else "user"
    return TranscriptEntry(
        role=role,
        message=raw.get("message") or "",
        timestamp_seconds=raw.get("time_in_call_secs"),
    )


def format_transcript(entries: List[TranscriptEntry]) -> str:
    """Render the transcript as the plain text sent for scoring."""
    return "\n\n".join(
        f"{'Interviewer' if entry.role == 'agent' else 'Candidate'}: {entry.message}"
        for entry in entries
    )


@dataclass(frozen=True)
class ConversationSnapshot:
    status: str
    entries: List[TranscriptEntry] = field(default_factory=list)

    @property
    def is_ready(self) -> bool:
        return self.status in READY_STATUSES


class TranscriptSource:
    """
    Thin client for the provider's "get conversation" endpoint.

    Owns no connection state of its own; the ``httpx.AsyncClient`` is created
    and closed by the application lifespan.
    """

    def __init__(self, client: httpx.AsyncClient, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self._client = client
        self._api_key = api_key if api_key is not None else settings.ELEVENLABS_API_KEY
        self._base_url = (base_url or settings.ELEVENLABS_API_BASE_URL).rstrip('/')

    async def get_conversation(self, conversation_id: str) -> ConversationSnapshot:
        """
        Fetch one snapshot of a conversation.

        Raises:
            ConfigurationError: If no API key is configured.
            ConversationNotFoundError: On 404.
            UpstreamError: On any other non-2xx status, or a body that is
                undecodable or not shaped like a conversation.
            UpstreamUnavailableError: If the provider cannot be reached.
        """
        if not self._api_key:
            raise ConfigurationError("ELEVENLABS_API_KEY is not configured")

        url = f"{self._base_url}/convai/conversations/{conversation_id}"
        try:
            response = await self._client.get(
                url,
                headers={"xi-api-key": self._api_key},
                timeout=settings.TRANSCRIPT_REQUEST_TIMEOUT,
            )
        except httpx.TransportError as e:
            raise UpstreamUnavailableError(
                f"Transcript source unreachable: {type(e).__name__}",
                details={"conversation_id": conversation_id},
            ) from e

        if response.status_code == 404:
            raise ConversationNotFoundError(
                f"Conversation {conversation_id} not found",
                details={"conversation_id": conversation_id},
            )
        if not response.is_success:
            raise UpstreamError(
                f"Transcript source error: status={response.status_code}",
                details={"conversation_id": conversation_id, "status": response.status_code},
            )

        try:
            data = response.json()
        except (ValueError, RecursionError) as e:
            raise UpstreamError(
                "Transcript source returned an undecodable body",
                details={"conversation_id": conversation_id},
            ) from e

        if not isinstance(data, dict):
            raise UpstreamError(
                f"Transcript source returned a {type(data).__name__} body, expected object",
                details={"conversation_id": conversation_id},
            )

        status = str(data.get("status", ""))
        if status not in READY_STATUSES:
            return ConversationSnapshot(status=status)

        raw_turns = data.get("transcript") or []
        if not isinstance(raw_turns, list):
            raise UpstreamError(
                "Transcript source returned a transcript that is not a list",
                details={"conversation_id": conversation_id},
            )
        try:
            entries = [normalize_entry(raw) for raw in raw_turns if isinstance(raw, dict)]
        except ValidationError as e:
            raise UpstreamError(
                f"Transcript source returned a malformed turn: {e.error_count()} error(s)",
                details={"conversation_id": conversation_id},
            ) from e
        return ConversationSnapshot(status=status, entries=entries)


class TranscriptRetriever:
    """
    Polls a TranscriptSource until the transcript is ready.

    The delay after poll ``k`` (0-indexed) is ``base_delay * multiplier**k``;
    there is no delay before the first poll and none after the last. Every poll
    is charged to the rate-limit policy for the caller's identity. Only "not
    ready" is retried; hard errors, connectivity failures and rate limiting
    end the fetch immediately.
    """

    def __init__(
        self,
        source: TranscriptSource,
        rate_limiter: SlidingWindowRateLimiter,
        policy: RateLimitPolicy,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        multiplier: Optional[float] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.source = source
        self.rate_limiter = rate_limiter
        self.policy = policy
        self.max_attempts = max_attempts or settings.TRANSCRIPT_POLL_MAX_ATTEMPTS
        self.base_delay = base_delay if base_delay is not None else settings.TRANSCRIPT_POLL_BASE_DELAY
        self.multiplier = multiplier or settings.TRANSCRIPT_POLL_MULTIPLIER
        self._sleep = sleep

    async def fetch(self, conversation_id: str, identity: str = "unknown") -> List[TranscriptEntry]:
        validate_conversation_id(conversation_id)

        retry_kwargs = {}
        if self._sleep is not None:
            retry_kwargs["sleep"] = self._sleep

        retryer = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=self.multiplier),
            retry=retry_if_exception_type(TranscriptNotReadyError),
            before_sleep=before_sleep_log(logger, logging.INFO),
            reraise=True,
            **retry_kwargs,
        )

        async for attempt in retryer:
            with attempt:
                attempt_number = attempt.retry_state.attempt_number
                self.rate_limiter.require(self.policy, identity)

                snapshot = await self.source.get_conversation(conversation_id)
                if not snapshot.is_ready:
                    raise TranscriptNotReadyError(
                        f"Conversation {conversation_id} status={snapshot.status!r} "
                        f"(attempt {attempt_number}/{self.max_attempts})"
                    )

                logger.info(
                    f"Transcript ready for {conversation_id}: {len(snapshot.entries)} entries "
                    f"after {attempt_number} attempt(s)"
                )
                return snapshot.entries

        # Unreachable: the retryer either returns above or re-raises the last error
        raise TranscriptNotReadyError(f"Conversation {conversation_id} never became ready")
