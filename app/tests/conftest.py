"""Shared fixtures and utilities for tests."""

import asyncio
import copy
import os
from typing import Any, Callable, Iterator, List, Optional

import httpx
import pytest
from langchain_core.messages import AIMessage

# Must be set before app.core.config is imported anywhere
os.environ.setdefault("ELEVENLABS_API_KEY", "test-elevenlabs-key")
os.environ.setdefault("DELIBERATION_SECONDS", "0")

from app.services.pipeline.transcript_retriever import TranscriptSource  # noqa: E402
from app.services.tools.rate_limiter import RateLimitPolicy, SlidingWindowRateLimiter  # noqa: E402

TEST_BASE_URL = "https://api.test.local/v1"
CONVERSATION_ID = "conv_abc123XYZ"

VALID_PAYLOAD = {
    "eloRating": 1500,
    "tier": "Noteworthy",
    "verdict": "NOT HIRED",
    "bossSummary": "You did not waste my time entirely. Flashes of competence, nothing sustained.",
    "dimensions": [
        {"name": "communication", "score": 6, "feedback": "Clear enough, but you wandered."},
        {"name": "technical", "score": 7, "feedback": "Solid on the basics, thin on trade-offs."},
        {"name": "behavioural", "score": 5, "feedback": "Your examples had no numbers in them."},
        {"name": "confidence", "score": 6, "feedback": "Composed, until the second follow-up."},
        {"name": "questionsAsked", "score": 4, "feedback": "Generic questions about team culture."},
    ],
    "moments": [
        {
            "type": "good",
            "question": "Tell me about a system you designed.",
            "quote": "I split the ingestion path so writes never blocked reads.",
            "explanation": "Specific and correct. I will allow it.",
        },
        {
            "type": "mistake",
            "question": "How did you measure the result?",
            "quote": "It just felt faster.",
            "explanation": "Feelings are not metrics.",
        },
        {
            "type": "neutral",
            "question": "Any questions for me?",
            "quote": "What is the culture like?",
            "explanation": "Everyone asks this.",
        },
    ],
    "isPartial": False,
}


class FakeLLM:
    """Stands in for the chat model: records messages, returns a canned reply or raises."""

    def __init__(self, content: Any = "", error: Optional[Exception] = None):
        self.content = content
        self.error = error
        self.calls: List[list] = []

    async def ainvoke(self, messages):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return AIMessage(content=self.content)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def payload_factory() -> Callable[..., dict]:
    """Build a valid scoring payload, overriding top-level keys."""
    def build(**overrides) -> dict:
        payload = copy.deepcopy(VALID_PAYLOAD)
        payload.update(overrides)
        return payload
    return build


@pytest.fixture
def fake_llm_factory() -> Callable[..., FakeLLM]:
    return FakeLLM


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rate_limiter(clock) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(sweep_interval=100, clock=clock)


@pytest.fixture
def generous_policy() -> RateLimitPolicy:
    return RateLimitPolicy("test", 10_000, 60)


@pytest.fixture
def recorded_sleep():
    """Async sleep replacement that records requested delays instead of waiting."""
    delays: List[float] = []

    async def sleep(seconds: float) -> None:
        delays.append(float(seconds))

    sleep.delays = delays
    return sleep


@pytest.fixture
def source_factory() -> Iterator[Callable[[Callable[[httpx.Request], httpx.Response]], TranscriptSource]]:
    """Build a TranscriptSource whose HTTP traffic is served by ``handler``."""
    clients: List[httpx.AsyncClient] = []

    def build(handler, api_key: str = "test-elevenlabs-key") -> TranscriptSource:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return TranscriptSource(client, api_key=api_key, base_url=TEST_BASE_URL)

    yield build

    # Teardown runs outside any event loop
    for client in clients:
        asyncio.run(client.aclose())


def conversation_body(status: str = "done", transcript: Optional[list] = None) -> dict:
    if transcript is None:
        transcript = [
            {"role": "agent", "message": "Why should I hire you?", "time_in_call_secs": 1},
            {"role": "user", "message": "Because I ship.", "time_in_call_secs": 4},
        ]
    return {"conversation_id": CONVERSATION_ID, "status": status, "transcript": transcript}


@pytest.fixture
def conversation_body_factory():
    return conversation_body
