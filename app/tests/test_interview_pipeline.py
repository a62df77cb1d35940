"""
Tests for the AnalysisPipeline state machine and its event stream.
"""

import json

import httpx
import pytest

from app.core.exceptions import (
    ConversationNotFoundError,
    PipelineStateError,
    ScoringFailedError,
)
from app.schemas.interview import AnalysisRequest, TranscriptEntry, Verdict
from app.services.pipeline.interview_pipeline import (
    GENERIC_FAILURE_MESSAGE,
    AnalysisPipeline,
    PipelinePhase,
)
from app.services.pipeline.scoring_service import ScoringService
from app.services.pipeline.scoring_validator import validate_scoring_response
from app.services.pipeline.transcript_retriever import TranscriptRetriever

from conftest import CONVERSATION_ID

ENTRIES = [
    TranscriptEntry(role="agent", message="What did you build last year?"),
    TranscriptEntry(role="user", message="A billing reconciler."),
]


class StubRetriever:
    def __init__(self, entries=None, error=None):
        self.entries = entries if entries is not None else ENTRIES
        self.error = error
        self.calls = []

    async def fetch(self, conversation_id, identity="unknown"):
        self.calls.append((conversation_id, identity))
        if self.error is not None:
            raise self.error
        return self.entries


class StubScorer:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def score(self, transcript_text, cv_text=None, identity="unknown"):
        self.calls.append((transcript_text, cv_text, identity))
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def scoring_result(payload_factory):
    return validate_scoring_response(payload_factory())


@pytest.fixture
def make_pipeline(recorded_sleep):
    def build(retriever, scorer, cv_text=None, **kwargs):
        request = AnalysisRequest(conversation_id=CONVERSATION_ID, cv_text=cv_text)
        kwargs.setdefault("deliberation_seconds", 0.8)
        return AnalysisPipeline(request, retriever, scorer, identity="198.51.100.2", sleep=recorded_sleep, **kwargs)
    return build


async def collect(pipeline):
    return [event async for event in pipeline.run_async_generator()]


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_phases_in_order_then_complete(self, make_pipeline, scoring_result, recorded_sleep):
        retriever = StubRetriever()
        scorer = StubScorer(result=scoring_result)
        pipeline = make_pipeline(retriever, scorer, cv_text="Staff engineer.")

        events = await collect(pipeline)

        assert [e["type"] for e in events] == ["phase", "phase", "phase", "phase", "complete"]
        assert [e["content"]["phase"] for e in events[:4]] == [
            "retrieving_transcript", "scoring", "deliberating", "done",
        ]
        assert events[1]["content"]["label"] == "Reviewing your performance"
        assert events[-1]["content"] == scoring_result.to_response()

        assert pipeline.phase is PipelinePhase.DONE
        assert pipeline.history == [
            PipelinePhase.RETRIEVING_TRANSCRIPT,
            PipelinePhase.SCORING,
            PipelinePhase.DELIBERATING,
            PipelinePhase.DONE,
        ]
        assert pipeline.result == scoring_result
        assert pipeline.transcript == ENTRIES
        assert recorded_sleep.delays == [0.8]

    @pytest.mark.asyncio
    async def test_inputs_flow_through(self, make_pipeline, scoring_result):
        retriever = StubRetriever()
        scorer = StubScorer(result=scoring_result)

        await make_pipeline(retriever, scorer, cv_text="Staff engineer.").run()

        assert retriever.calls == [(CONVERSATION_ID, "198.51.100.2")]
        assert scorer.calls == [(
            "Interviewer: What did you build last year?\n\nCandidate: A billing reconciler.",
            "Staff engineer.",
            "198.51.100.2",
        )]

    @pytest.mark.asyncio
    async def test_events_are_json_serializable(self, make_pipeline, scoring_result):
        events = await collect(make_pipeline(StubRetriever(), StubScorer(result=scoring_result)))
        for event in events:
            json.dumps(event)

    @pytest.mark.asyncio
    async def test_run_returns_result(self, make_pipeline, scoring_result):
        result = await make_pipeline(StubRetriever(), StubScorer(result=scoring_result)).run()
        assert result == scoring_result


class TestFailures:
    @pytest.mark.asyncio
    async def test_retrieval_failure_skips_scoring(self, make_pipeline, scoring_result, recorded_sleep):
        scorer = StubScorer(result=scoring_result)
        pipeline = make_pipeline(StubRetriever(error=ConversationNotFoundError("gone")), scorer)

        events = await collect(pipeline)

        assert [e["type"] for e in events] == ["phase", "error"]
        assert events[-1]["content"] == {
            "error": "Conversation not found",
            "error_type": "ConversationNotFoundError",
        }
        assert pipeline.phase is PipelinePhase.FAILED
        assert pipeline.history == [PipelinePhase.RETRIEVING_TRANSCRIPT, PipelinePhase.FAILED]
        assert scorer.calls == []
        assert recorded_sleep.delays == []

    @pytest.mark.asyncio
    async def test_scoring_failure_discards_transcript(self, make_pipeline):
        pipeline = make_pipeline(StubRetriever(), StubScorer(error=ScoringFailedError("bad json")))

        events = await collect(pipeline)

        assert [e["content"].get("phase") for e in events[:2]] == ["retrieving_transcript", "scoring"]
        assert events[-1]["type"] == "error"
        assert events[-1]["content"]["error"] == "Failed to score the interview"
        assert pipeline.transcript is None
        assert pipeline.result is None
        assert pipeline.error_message == "Failed to score the interview"

    @pytest.mark.asyncio
    async def test_unexpected_error_gets_generic_message(self, make_pipeline):
        pipeline = make_pipeline(StubRetriever(error=KeyError("transcript")), StubScorer())

        events = await collect(pipeline)

        assert events[-1]["content"]["error"] == GENERIC_FAILURE_MESSAGE
        assert "transcript" not in events[-1]["content"]["error"]

    @pytest.mark.asyncio
    async def test_run_reraises(self, make_pipeline):
        error = ScoringFailedError("bad json")
        pipeline = make_pipeline(StubRetriever(), StubScorer(error=error))

        with pytest.raises(ScoringFailedError) as exc_info:
            await pipeline.run()

        assert exc_info.value is error


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_runs_only_once(self, make_pipeline, scoring_result):
        pipeline = make_pipeline(StubRetriever(), StubScorer(result=scoring_result))
        await pipeline.run()

        with pytest.raises(PipelineStateError):
            await pipeline.run()

    @pytest.mark.asyncio
    async def test_failed_pipeline_cannot_be_resumed(self, make_pipeline):
        pipeline = make_pipeline(StubRetriever(error=ConversationNotFoundError("gone")), StubScorer())
        await collect(pipeline)

        with pytest.raises(PipelineStateError):
            await collect(pipeline)

    def test_phases_only_move_forward(self, make_pipeline):
        pipeline = make_pipeline(StubRetriever(), StubScorer())

        with pytest.raises(PipelineStateError):
            pipeline._transition(PipelinePhase.SCORING)

        pipeline._transition(PipelinePhase.RETRIEVING_TRANSCRIPT)
        pipeline._transition(PipelinePhase.SCORING)
        with pytest.raises(PipelineStateError):
            pipeline._transition(PipelinePhase.RETRIEVING_TRANSCRIPT)
        with pytest.raises(PipelineStateError):
            pipeline._transition(PipelinePhase.DONE)

        pipeline._transition(PipelinePhase.FAILED)
        with pytest.raises(PipelineStateError):
            pipeline._transition(PipelinePhase.FAILED)

    def test_each_pipeline_gets_its_own_correlation_id(self, make_pipeline):
        first = make_pipeline(StubRetriever(), StubScorer())
        second = make_pipeline(StubRetriever(), StubScorer())
        assert first.correlation_id != second.correlation_id


@pytest.mark.asyncio
async def test_end_to_end_mislabeled_hire(
    source_factory, conversation_body_factory, rate_limiter, generous_policy,
    recorded_sleep, fake_llm_factory, payload_factory,
):
    """Real retriever and scorer: a 2300 rating labelled NOT HIRED finishes as HIRED."""
    bodies = iter([conversation_body_factory(status="processing"), conversation_body_factory()])
    source = source_factory(lambda request: httpx.Response(200, json=next(bodies)))
    retriever = TranscriptRetriever(source, rate_limiter, generous_policy, sleep=recorded_sleep)

    llm = fake_llm_factory(content=json.dumps(payload_factory(eloRating=2300, verdict="NOT HIRED")))
    scorer = ScoringService(rate_limiter, generous_policy, llm=llm)

    request = AnalysisRequest(conversation_id=CONVERSATION_ID, cv_text="Principal engineer, 12 years.")
    pipeline = AnalysisPipeline(request, retriever, scorer, deliberation_seconds=0, sleep=recorded_sleep)

    events = [event async for event in pipeline.run_async_generator()]

    assert events[-1]["type"] == "complete"
    assert events[-1]["content"]["verdict"] == Verdict.HIRED.value
    assert events[-1]["content"]["tier"] == "Hired Material"
    assert "=== CANDIDATE CV ===\nPrincipal engineer, 12 years." in llm.calls[0][1].content
    # One backoff between polls, then the deliberation dwell
    assert recorded_sleep.delays == [3.0, 0.0]
