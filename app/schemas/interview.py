from enum import Enum
from typing import Any, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# --- Fixed categorical sets ---

class Tier(str, Enum):
    """Six ordered performance bands, lowest first."""
    WASTING_MY_TIME = "Wasting My Time"
    SHOWS_A_PULSE = "Shows a Pulse"
    ADEQUATE = "Adequate"
    NOTEWORTHY = "Noteworthy"
    IMPRESSIVE = "Impressive"
    HIRED_MATERIAL = "Hired Material"


# Inclusive on both ends, ordered lowest first, contiguous over [100, 3000]
TIER_BOUNDARIES: Tuple[Tuple[Tier, int, int], ...] = (
    (Tier.WASTING_MY_TIME, 100, 599),
    (Tier.SHOWS_A_PULSE, 600, 999),
    (Tier.ADEQUATE, 1000, 1399),
    (Tier.NOTEWORTHY, 1400, 1799),
    (Tier.IMPRESSIVE, 1800, 2199),
    (Tier.HIRED_MATERIAL, 2200, 3000),
)


class Verdict(str, Enum):
    HIRED = "HIRED"
    NOT_HIRED = "NOT HIRED"


class DimensionName(str, Enum):
    COMMUNICATION = "communication"
    TECHNICAL = "technical"
    BEHAVIOURAL = "behavioural"
    CONFIDENCE = "confidence"
    QUESTIONS_ASKED = "questionsAsked"


class MomentType(str, Enum):
    BRILLIANT = "brilliant"
    GOOD = "good"
    NEUTRAL = "neutral"
    INACCURACY = "inaccuracy"
    MISTAKE = "mistake"
    BLUNDER = "blunder"


# --- Transcript Models ---

class TranscriptEntry(BaseModel):
    """A single turn of the voice conversation, as produced by the transcript source."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    role: Literal["agent", "user"] = Field(
        ...,
        description="'agent' for the interviewer, 'user' for the candidate."
    )
    message: str = Field(default="", description="The spoken message content.")
    timestamp_seconds: Optional[float] = Field(
        default=None,
        alias="timestamp",
        description="Seconds from the start of the call, if the source provides it."
    )


# --- Scoring Models ---

class Dimension(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: DimensionName
    score: float = Field(..., description="Dimension score, nominally 1-10.")
    feedback: str


class Moment(BaseModel):
    """A single annotated excerpt of the transcript."""
    model_config = ConfigDict(frozen=True)

    type: MomentType
    question: str = Field(..., description="The interviewer question that prompted the moment.")
    quote: str = Field(..., description="Direct quote of the candidate's answer.")
    explanation: str


class ScoringResult(BaseModel):
    """
    Canonical, post-validation scoring result.

    Only ``validate_scoring_response`` should construct one; it guarantees the
    rating/tier/verdict pairing and the closed categorical sets. Field aliases
    are the wire keys the scoring model is asked to produce, so
    ``model_dump(by_alias=True, exclude_none=True)`` re-validates to an equal result.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    rating: int = Field(..., alias="eloRating", ge=100, le=3000)
    tier: Tier
    verdict: Verdict
    summary: str = Field(..., alias="bossSummary")
    dimensions: List[Dimension] = Field(..., min_length=5, max_length=5)
    moments: List[Moment] = Field(default_factory=list)
    is_partial: bool = Field(default=False, alias="isPartial")
    note: Optional[str] = None

    def to_response(self) -> dict:
        """JSON-ready dict in wire format (omits ``note`` when absent)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- API Request Models ---

class ScoreInterviewRequest(BaseModel):
    """Body of POST /score-interview. Types are checked by the scoring service."""
    transcript: Any = None
    cvText: Any = None


class AnalysisRequest(BaseModel):
    """Immutable snapshot of everything one analysis attempt needs."""
    model_config = ConfigDict(frozen=True)

    conversation_id: str
    cv_text: Optional[str] = None


class AnalysisBody(BaseModel):
    """Body of POST /analyses/{conversation_id}."""
    cvText: Optional[str] = Field(default=None, description="Extracted CV text, if the user uploaded one.")


class UploadResponse(BaseModel):
    text: str
    fileName: str
