"""
Interview Analysis Pipeline Orchestrator.

This module sequences one analysis attempt:
1. Transcript retrieval (polls until the provider has finalized it)
2. Scoring (single LLM call + validation/self-healing)
3. Deliberation (fixed cosmetic dwell)
4. Done, exposing the canonical ScoringResult

Each phase change is emitted as an event so the presentation layer can follow
along. Orchestration only; the work is delegated to the retriever and scorer.
"""
from __future__ import annotations
import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from app.core.config import settings
from app.core.exceptions import AppError, PipelineStateError
from app.core.logger import log_async_execution_time, set_conversation_id, set_correlation_id
from app.schemas.interview import AnalysisRequest, ScoringResult, TranscriptEntry
from app.services.pipeline.scoring_service import ScoringService
from app.services.pipeline.transcript_retriever import TranscriptRetriever, format_transcript

logger = logging.getLogger(__name__)


class PipelinePhase(str, Enum):
    RETRIEVING_TRANSCRIPT = "retrieving_transcript"
    SCORING = "scoring"
    DELIBERATING = "deliberating"
    DONE = "done"
    FAILED = "failed"


PHASE_ORDER: List[PipelinePhase] = [
    PipelinePhase.RETRIEVING_TRANSCRIPT,
    PipelinePhase.SCORING,
    PipelinePhase.DELIBERATING,
    PipelinePhase.DONE,
]

TERMINAL_PHASES = frozenset({PipelinePhase.DONE, PipelinePhase.FAILED})

PHASE_LABELS: Dict[PipelinePhase, str] = {
    PipelinePhase.RETRIEVING_TRANSCRIPT: "Retrieving transcript",
    PipelinePhase.SCORING: "Reviewing your performance",
    PipelinePhase.DELIBERATING: "Deliberating...",
    PipelinePhase.DONE: "Done",
    PipelinePhase.FAILED: "Failed",
}

GENERIC_FAILURE_MESSAGE = "Something went wrong during analysis. Please try again."


class AnalysisPipeline:
    """
    State machine for a single interview analysis attempt.

    Phases only move forward; ``FAILED`` is reachable from any non-terminal
    phase. An instance runs at most once: retrying means building a new
    pipeline from the same AnalysisRequest, never resuming this one.
    """

    def __init__(
        self,
        request: AnalysisRequest,
        retriever: TranscriptRetriever,
        scorer: ScoringService,
        identity: str = "unknown",
        deliberation_seconds: Optional[float] = None,
        correlation_id: Optional[str] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialize the AnalysisPipeline.

        Args:
            request: Snapshot of the inputs for this attempt
            retriever: Transcript retriever (rate limited per poll)
            scorer: Scoring service (rate limited per call)
            identity: Caller identity charged for rate limiting
            deliberation_seconds: Dwell before DONE (defaults to settings)
            correlation_id: Optional correlation ID for request tracking (auto-generated if not provided)
            sleep: Awaitable sleep used for the dwell
        """
        self.request = request
        self.retriever = retriever
        self.scorer = scorer
        self.identity = identity
        self.deliberation_seconds = (
            deliberation_seconds if deliberation_seconds is not None else settings.DELIBERATION_SECONDS
        )
        self.correlation_id = correlation_id or str(uuid.uuid4())
        self._sleep = sleep

        self.phase: Optional[PipelinePhase] = None
        self.history: List[PipelinePhase] = []
        self.transcript: Optional[List[TranscriptEntry]] = None
        self.result: Optional[ScoringResult] = None
        self.error_message: Optional[str] = None
        self.error: Optional[BaseException] = None
        self._started = False

    @property
    def is_finished(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def _transition(self, next_phase: PipelinePhase) -> Dict[str, Any]:
        current = self.phase
        if current in TERMINAL_PHASES:
            raise PipelineStateError(f"Pipeline already finished in {current.value}")
        if next_phase is not PipelinePhase.FAILED:
            current_index = PHASE_ORDER.index(current) if current is not None else -1
            if PHASE_ORDER.index(next_phase) != current_index + 1:
                raise PipelineStateError(
                    f"Illegal transition {current.value if current else 'start'} -> {next_phase.value}"
                )

        self.phase = next_phase
        self.history.append(next_phase)
        logger.info(f"Analysis phase -> {next_phase.value}")
        return {
            "type": "phase",
            "content": {"phase": next_phase.value, "label": PHASE_LABELS[next_phase]},
        }

    def _fail(self, exc: Exception) -> Dict[str, Any]:
        if isinstance(exc, AppError):
            self.error_message = exc.user_message
        else:
            self.error_message = GENERIC_FAILURE_MESSAGE
        self.error = exc
        # Failed attempts expose only the error
        self.transcript = None
        self.result = None
        self._transition(PipelinePhase.FAILED)
        return {
            "type": "error",
            "content": {"error": self.error_message, "error_type": type(exc).__name__},
        }

    @log_async_execution_time
    async def run_async_generator(self) -> AsyncIterator[Dict[str, Any]]:
        """
        Run the pipeline, yielding events as phases change.

        Yields ``phase`` events, then exactly one ``complete`` (with the result
        in wire format) or ``error`` (with a user-safe message) event.
        """
        if self._started:
            raise PipelineStateError("Pipeline instance already ran; create a new one to retry")
        self._started = True
        set_correlation_id(self.correlation_id)
        set_conversation_id(self.request.conversation_id)
        logger.info(f"Analysis started for conversation {self.request.conversation_id}")

        try:
            yield self._transition(PipelinePhase.RETRIEVING_TRANSCRIPT)
            transcript = await self.retriever.fetch(self.request.conversation_id, identity=self.identity)
            self.transcript = transcript

            yield self._transition(PipelinePhase.SCORING)
            result = await self.scorer.score(
                format_transcript(transcript),
                self.request.cv_text,
                identity=self.identity,
            )
            self.result = result

            yield self._transition(PipelinePhase.DELIBERATING)
            await self._sleep(self.deliberation_seconds)

            yield self._transition(PipelinePhase.DONE)
        except AppError as e:
            logger.warning(f"Analysis failed in {self.phase.value if self.phase else 'start'}: {e.message}")
            yield self._fail(e)
            return
        except Exception as e:
            logger.error(f"Unexpected error in analysis pipeline: {e}", exc_info=True)
            yield self._fail(e)
            return

        yield {"type": "complete", "content": self.result.to_response()}

    async def run(self) -> ScoringResult:
        """Run to completion and return the result, re-raising the failure if any."""
        async for _ in self.run_async_generator():
            pass
        if self.phase is PipelinePhase.FAILED:
            raise self.error
        return self.result
