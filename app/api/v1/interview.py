import json
import logging
from typing import Callable, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool

from app.api.deps import (
    get_client_identity,
    get_conversations_policy,
    get_pipeline_factory,
    get_rate_limiter,
    get_scoring_service,
    get_transcript_source,
    get_upload_policy,
)
from app.core.exceptions import InvalidInputError
from app.core.logger import set_correlation_id
from app.schemas.interview import (
    AnalysisBody,
    AnalysisRequest,
    ScoreInterviewRequest,
    UploadResponse,
)
from app.services.pipeline.file_validator import FileValidator
from app.services.pipeline.interview_pipeline import AnalysisPipeline
from app.services.pipeline.scoring_service import ScoringService
from app.services.pipeline.transcript_retriever import TranscriptSource, validate_conversation_id
from app.services.tools.extractors import file_text_extractor
from app.services.tools.rate_limiter import RateLimitPolicy, SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

interview_router = APIRouter()


@interview_router.get("/conversations/{conversation_id}")
async def get_conversation_transcript(
    conversation_id: str,
    identity: str = Depends(get_client_identity),
    rate_limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    policy: RateLimitPolicy = Depends(get_conversations_policy),
    source: TranscriptSource = Depends(get_transcript_source),
):
    """
    Single poll of the transcript source.

    Returns 200 with the transcript once the conversation is finalized, or
    202 ``{"ready": false}`` so the client can retry with backoff.
    """
    rate_limiter.require(policy, identity)
    validate_conversation_id(conversation_id)

    snapshot = await source.get_conversation(conversation_id)
    if not snapshot.is_ready:
        return JSONResponse(status_code=202, content={"ready": False})

    transcript = [
        entry.model_dump(by_alias=True, exclude_none=True) for entry in snapshot.entries
    ]
    return {"ready": True, "transcript": transcript}


@interview_router.post("/score-interview")
async def score_interview(
    body: ScoreInterviewRequest,
    identity: str = Depends(get_client_identity),
    scorer: ScoringService = Depends(get_scoring_service),
):
    """Score a formatted transcript (plus optional CV text) and return the validated result."""
    result = await scorer.score(body.transcript, body.cvText, identity=identity)
    return result.to_response()


@interview_router.post("/upload", response_model=UploadResponse)
async def upload_cv(
    file: Optional[UploadFile] = File(default=None),
    identity: str = Depends(get_client_identity),
    rate_limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    policy: RateLimitPolicy = Depends(get_upload_policy),
):
    """
    Extract text from an uploaded CV (.pdf, .docx or .txt).

    Flow:
    1. Rate limit
    2. Validate presence, extension, size and magic bytes (fail fast)
    3. Extract text off the event loop
    """
    rate_limiter.require(policy, identity)

    if file is None:
        raise InvalidInputError("No file uploaded")

    validator = FileValidator(logger=logger)
    # One byte past the limit is enough for the size check to reject it
    content = await file.read(validator.max_file_size_bytes + 1)
    extension = validator.validate(file.filename or "", content)

    try:
        text = await run_in_threadpool(file_text_extractor, extension, content)
    except Exception as e:
        logger.error(f"Error extracting text from {file.filename}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to process uploaded file")

    if not text.strip():
        raise HTTPException(status_code=422, detail="Could not extract any text from the file")

    return UploadResponse(text=text, fileName=file.filename)


@interview_router.post("/analyses/{conversation_id}")
async def analyse_interview(
    conversation_id: str,
    body: Optional[AnalysisBody] = None,
    identity: str = Depends(get_client_identity),
    scorer: ScoringService = Depends(get_scoring_service),
    pipeline_factory: Callable[[AnalysisRequest, str], AnalysisPipeline] = Depends(get_pipeline_factory),
):
    """
    Run the full analysis pipeline for a finished conversation.
    Streams pipeline events as NDJSON (Newline Delimited JSON).

    Flow:
    1. Validate the conversation id and CV text (fail fast, before streaming starts)
    2. Snapshot the inputs into an AnalysisRequest
    3. Stream phase events, then one ``complete`` or ``error`` event
    """
    validate_conversation_id(conversation_id)
    cv_text = body.cvText if body else None
    scorer.validate_cv_text(cv_text)
    analysis_request = AnalysisRequest(conversation_id=conversation_id, cv_text=cv_text)
    pipeline = pipeline_factory(analysis_request, identity)
    set_correlation_id(pipeline.correlation_id)

    async def response_generator():
        async for event in pipeline.run_async_generator():
            if event["type"] == "phase":
                logger.info(f"📤 Streaming phase '{event['content']['phase']}'")
            yield json.dumps(event) + "\n"

    # X-Accel-Buffering: no disables nginx/proxy buffering for immediate delivery
    return StreamingResponse(
        response_generator(),
        media_type="application/x-ndjson",
        headers={
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "X-Accel-Buffering": "no",
        }
    )
