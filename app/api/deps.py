from typing import Callable

from fastapi import Depends, Request

from app.schemas.interview import AnalysisRequest
from app.services.pipeline.interview_pipeline import AnalysisPipeline
from app.services.pipeline.scoring_service import ScoringService
from app.services.pipeline.transcript_retriever import TranscriptRetriever, TranscriptSource
from app.services.tools.rate_limiter import RateLimitPolicy, SlidingWindowRateLimiter


def get_client_identity(request: Request) -> str:
    """Caller identity for rate limiting: first X-Forwarded-For hop, else 'unknown'."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return "unknown"


def get_rate_limiter(request: Request) -> SlidingWindowRateLimiter:
    return request.app.state.rate_limiter


def get_rate_limit_policies(request: Request) -> dict:
    return request.app.state.rate_limit_policies


def get_conversations_policy(policies: dict = Depends(get_rate_limit_policies)) -> RateLimitPolicy:
    return policies["conversations"]


def get_upload_policy(policies: dict = Depends(get_rate_limit_policies)) -> RateLimitPolicy:
    return policies["upload"]


def get_transcript_source(request: Request) -> TranscriptSource:
    return TranscriptSource(request.app.state.http_client)


def get_transcript_retriever(
    source: TranscriptSource = Depends(get_transcript_source),
    rate_limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    policy: RateLimitPolicy = Depends(get_conversations_policy),
) -> TranscriptRetriever:
    return TranscriptRetriever(source, rate_limiter, policy)


def get_scoring_service(
    rate_limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    policies: dict = Depends(get_rate_limit_policies),
) -> ScoringService:
    return ScoringService(rate_limiter, policies["score-interview"])


def get_pipeline_factory(
    retriever: TranscriptRetriever = Depends(get_transcript_retriever),
    scorer: ScoringService = Depends(get_scoring_service),
) -> Callable[[AnalysisRequest, str], AnalysisPipeline]:
    """
    Dependency for providing a factory to create AnalysisPipeline instances.
    Every attempt gets a fresh pipeline; failed ones are never resumed.
    """
    def factory(analysis_request: AnalysisRequest, identity: str) -> AnalysisPipeline:
        return AnalysisPipeline(analysis_request, retriever, scorer, identity=identity)
    return factory
