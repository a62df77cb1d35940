"""
Validation and self-healing of scoring responses.

The scoring model's output is treated as untrusted input. ``validate_scoring_response``
either returns a ``ScoringResult`` that satisfies every downstream invariant by
construction, or raises ``ScoringValidationError`` with a diagnostic reason.

Tier and verdict are derived fields: they are always recomputed from the
rating, and whatever the model claimed is only read for logging.
"""
import logging
import math
from typing import Any, Dict, List, Optional

from app.core.exceptions import ScoringValidationError
from app.schemas.interview import (
    Dimension,
    DimensionName,
    Moment,
    MomentType,
    ScoringResult,
    TIER_BOUNDARIES,
    Tier,
    Verdict,
)

logger = logging.getLogger(__name__)

MIN_RATING = 100
MAX_RATING = 3000
HIRED_THRESHOLD = 2200


VALID_DIMENSIONS = frozenset(d.value for d in DimensionName)
VALID_MOMENT_TYPES = frozenset(m.value for m in MomentType)


def derive_tier(rating: int) -> Tier:
    """Map a rounded rating to its band. Out-of-range values clamp to the end bands."""
    for tier, low, high in TIER_BOUNDARIES:
        if low <= rating <= high:
            return tier
    if rating < MIN_RATING:
        return Tier.WASTING_MY_TIME
    return Tier.HIRED_MATERIAL


def derive_verdict(rating: int) -> Verdict:
    return Verdict.HIRED if rating >= HIRED_THRESHOLD else Verdict.NOT_HIRED


def round_half_up(value: float) -> int:
    # round() would send 1450.5 to 1450 (banker's rounding)
    return int(math.floor(value + 0.5))


def _is_finite_number(value: Any) -> bool:
    # bool is an int subclass but never a valid score
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # int too large to convert to float
        return False


def _is_non_blank(value: Any) -> bool:
    return isinstance(value, str) and len(value.strip()) > 0


def _validate_rating(raw: Dict[str, Any]) -> int:
    rating = raw.get("eloRating")
    if not _is_finite_number(rating):
        raise ScoringValidationError(f"eloRating is not a valid number: {rating!r}")
    if rating < MIN_RATING or rating > MAX_RATING:
        raise ScoringValidationError(
            f"eloRating {rating} is outside valid range ({MIN_RATING}-{MAX_RATING})"
        )
    return round_half_up(rating)


def _validate_dimensions(raw_dimensions: Any) -> List[Dimension]:
    if not isinstance(raw_dimensions, list):
        raise ScoringValidationError("dimensions is not an array")

    seen = set()
    dimensions = []
    for entry in raw_dimensions:
        if not isinstance(entry, dict):
            raise ScoringValidationError("dimension entry is not an object")

        name = entry.get("name")
        if not isinstance(name, str) or name not in VALID_DIMENSIONS:
            raise ScoringValidationError(f"Invalid dimension name: {name!r}")
        if name in seen:
            raise ScoringValidationError(f"Duplicate dimension: {name!r}")
        seen.add(name)

        score = entry.get("score")
        if not _is_finite_number(score):
            raise ScoringValidationError(f"Dimension {name!r} has invalid score: {score!r}")

        feedback = entry.get("feedback")
        if not _is_non_blank(feedback):
            raise ScoringValidationError(f"Dimension {name!r} has empty or missing feedback")

        dimensions.append(Dimension(name=DimensionName(name), score=score, feedback=feedback))

    missing = [d.value for d in DimensionName if d.value not in seen]
    if missing:
        raise ScoringValidationError(f"Missing dimensions: {', '.join(missing)}")
    return dimensions


def _validate_moments(raw_moments: Any) -> List[Moment]:
    if not isinstance(raw_moments, list):
        raise ScoringValidationError("moments is not an array")

    moments = []
    for entry in raw_moments:
        if not isinstance(entry, dict):
            raise ScoringValidationError("moment entry is not an object")

        moment_type = entry.get("type")
        if not isinstance(moment_type, str) or moment_type not in VALID_MOMENT_TYPES:
            raise ScoringValidationError(f"Invalid annotation type: {moment_type!r}")

        for field in ("question", "quote", "explanation"):
            if not _is_non_blank(entry.get(field)):
                raise ScoringValidationError(
                    f"Moment of type {moment_type!r} has empty or missing {field}"
                )

        moments.append(Moment(
            type=MomentType(moment_type),
            question=entry["question"],
            quote=entry["quote"],
            explanation=entry["explanation"],
        ))

    # The prompt asks for at least three, but fewer is still a usable result
    if len(moments) < 3:
        logger.info(f"Scoring response has only {len(moments)} moments")
    return moments


def validate_scoring_response(raw: Any) -> ScoringResult:
    """
    Validate an untrusted scoring payload and return the canonical result.

    Args:
        raw: Decoded JSON value from the scoring model.

    Returns:
        ScoringResult with rating rounded and tier/verdict recomputed.

    Raises:
        ScoringValidationError: On any structural violation.
    """
    if not isinstance(raw, dict):
        raise ScoringValidationError(f"Scoring payload is {type(raw).__name__}, expected object")

    rating = _validate_rating(raw)

    tier = derive_tier(rating)
    claimed_tier = raw.get("tier")
    if claimed_tier != tier.value:
        logger.warning(
            f"Tier self-healing: response claimed tier {claimed_tier!r} for rating {rating}, "
            f"corrected to {tier.value!r}"
        )

    verdict = derive_verdict(rating)
    claimed_verdict = raw.get("verdict")
    if claimed_verdict != verdict.value:
        logger.warning(
            f"Verdict self-healing: response claimed verdict {claimed_verdict!r} for rating {rating}, "
            f"corrected to {verdict.value!r}"
        )

    summary = raw.get("bossSummary")
    if not _is_non_blank(summary):
        raise ScoringValidationError("bossSummary is missing or empty")

    dimensions = _validate_dimensions(raw.get("dimensions"))
    moments = _validate_moments(raw.get("moments"))

    is_partial = raw.get("isPartial")
    if not isinstance(is_partial, bool):
        is_partial = False

    note: Optional[str] = raw.get("note")
    if not _is_non_blank(note):
        note = None

    return ScoringResult(
        rating=rating,
        tier=tier,
        verdict=verdict,
        summary=summary,
        dimensions=dimensions,
        moments=moments,
        is_partial=is_partial,
        note=note,
    )
