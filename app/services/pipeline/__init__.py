"""
Interview Analysis Pipeline Package

Architecture:
- interview_pipeline.py: Phase state machine (retrieve -> score -> deliberate -> done)
- transcript_retriever.py: Transcript source client + polling with backoff
- scoring_service.py: Scoring LLM call
- scoring_validator.py: Validation and tier/verdict self-healing
- llm_parser.py: JSON recovery from LLM text
- file_validator.py: CV upload validation
"""

from .interview_pipeline import AnalysisPipeline, PipelinePhase
from .transcript_retriever import TranscriptRetriever, TranscriptSource, format_transcript
from .scoring_service import ScoringService
from .scoring_validator import derive_tier, derive_verdict, validate_scoring_response
from .llm_parser import parse_json_object
from .file_validator import FileValidator

__all__ = [
    'AnalysisPipeline',
    'PipelinePhase',
    'TranscriptRetriever',
    'TranscriptSource',
    'format_transcript',
    'ScoringService',
    'derive_tier',
    'derive_verdict',
    'validate_scoring_response',
    'parse_json_object',
    'FileValidator',
]
