from typing import Optional

from app.schemas.interview import TIER_BOUNDARIES, DimensionName, MomentType, Tier

_TIER_MEANINGS = {
    Tier.WASTING_MY_TIME: "Fundamental gaps. Struggled with basic questions.",
    Tier.SHOWS_A_PULSE: "Some potential, buried under vague or shallow answers.",
    Tier.ADEQUATE: "Reasonable answers, several of which could have gone deeper.",
    Tier.NOTEWORTHY: "Clear, relevant, well-structured answers with real substance.",
    Tier.IMPRESSIVE: "Deep expertise, specific evidence, insightful questions.",
    Tier.HIRED_MATERIAL: "Exceptional on every dimension.",
}

_DIMENSION_GUIDE = {
    DimensionName.COMMUNICATION: "clarity, structure and concision of responses",
    DimensionName.TECHNICAL: "domain expertise, depth and accuracy of claims",
    DimensionName.BEHAVIOURAL: "quality of concrete examples and evidence from experience",
    DimensionName.CONFIDENCE: "composure under pressure, pacing and conviction",
    DimensionName.QUESTIONS_ASKED: "quality and insight of the questions the candidate asked",
}


def generate_scoring_prompt() -> str:
    """
    Build the system prompt for interview scoring.

    Returns:
        The instruction prompt describing the rating scale, tiers, dimensions,
        moment annotations and the exact JSON output format.
    """
    min_rating, max_rating = TIER_BOUNDARIES[0][1], TIER_BOUNDARIES[-1][2]
    hired_from = next(low for tier, low, _ in TIER_BOUNDARIES if tier == Tier.HIRED_MATERIAL)
    tiers = "\n".join(
        f"- {tier.value} ({low}-{high}): {_TIER_MEANINGS[tier]}" for tier, low, high in TIER_BOUNDARIES
    )
    dimensions = "\n".join(f"- {d.value}: {guide}" for d, guide in _DIMENSION_GUIDE.items())
    moment_types = ", ".join(m.value for m in MomentType)
    dimension_skeleton = ",\n".join(
        f'    {{"name": "{d.value}", "score": <number 1-10>, "feedback": "<specific feedback>"}}'
        for d in DimensionName
    )

    return (
        "You are a demanding senior hiring manager who has just finished a job interview. "
        "Assess the candidate strictly on what they actually said in the transcript. "
        "Do not give credit for effort, and round down when a response sits between two bands.\n\n"
        "## Rating\n"
        f"Give a single per-interview rating between {min_rating} and {max_rating}, where 1000 is baseline adequacy.\n\n"
        "## Tiers\n"
        "Each rating maps to exactly one tier:\n"
        f"{tiers}\n\n"
        "## Dimensions\n"
        "Score all five dimensions from 1 to 10 with detailed feedback that says what the candidate did, "
        "what a strong answer would have contained, and why it matters:\n"
        f"{dimensions}\n\n"
        "## Moments\n"
        f"Annotate at least 3 (ideally 5-8) specific moments. Each has a type from: {moment_types}; "
        "the interviewer's actual question; a direct quote of the candidate's answer; and a 2-3 sentence explanation. "
        "Spread them across the interview.\n\n"
        "## Short interviews\n"
        "If the transcript has fewer than 5 substantive exchanges, set isPartial to true and explain in note.\n\n"
        "## Verdict\n"
        f"\"HIRED\" if the rating is {hired_from} or above, otherwise \"NOT HIRED\". "
        "Write bossSummary as 2-3 sentences summarising the overall performance.\n\n"
        "## Output Format\n"
        "Return ONLY a valid JSON object with this exact structure, with no markdown fences and no text outside it:\n"
        "{\n"
        f'  "eloRating": <number between {min_rating} and {max_rating}>,\n'
        '  "tier": "<tier name>",\n'
        '  "verdict": "<HIRED or NOT HIRED>",\n'
        '  "bossSummary": "<2-3 sentences>",\n'
        '  "dimensions": [\n'
        f"{dimension_skeleton}\n"
        "  ],\n"
        '  "moments": [\n'
        '    {"type": "<annotation type>", "question": "<interviewer question>", '
        '"quote": "<candidate quote>", "explanation": "<2-3 sentences>"}\n'
        "  ],\n"
        '  "isPartial": <true or false>,\n'
        '  "note": "<optional note, or null>"\n'
        "}"
    )


def generate_scoring_user_message(transcript: str, cv_text: Optional[str] = None) -> str:
    """Assemble the user content: optional CV section, transcript section, trailing instruction."""
    parts = []
    if cv_text and cv_text.strip():
        parts.append(f"=== CANDIDATE CV ===\n{cv_text}")
    parts.append(f"=== INTERVIEW TRANSCRIPT ===\n{transcript}")
    parts.append(
        "\nPlease analyse this interview transcript (and CV if provided) and produce the scoring assessment. "
        "Return only the JSON object as specified in your instructions."
    )
    return "\n\n".join(parts)
