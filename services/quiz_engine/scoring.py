# services/quiz_engine/scoring.py
# Turns a complete answer set into normalized trait scores and a result label.

import logging
import math
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from .models import (
    ABQuestion,
    InvalidAnswersError,
    LikertQuestion,
    ScenarioQuestion,
    ScoringConfig,
    ScoringResult,
    SliderQuestion,
    TestBlueprint,
)
from .profiles import assign_to_nearest_profile

logger = logging.getLogger(__name__)

# --- Constants ---

NEUTRAL_SCORE = 50
# Every converted answer lands in [-2, 2], so n answers span [-2n, 2n]
POINT_FLOOR = -2
POINT_SPAN = 4


def round_half_up(value: float) -> int:
    """Rounds .5 away from zero for positives (Python's round() is banker's rounding)."""
    return int(math.floor(value + 0.5))


def answer_key(value: Any) -> str:
    """
    Renders an answer as a likert map key.
    Integral floats drop the fraction so 4 and 4.0 both look up "4".
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _to_number(value: Any) -> Optional[float]:
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, str) and not value.strip():
        return 0.0
    if isinstance(value, (int, float, str)):
        try:
            return float(value)
        except (OverflowError, ValueError):
            # "abc", or an int too large for a float
            return None
    return None


def _question_points(question, answer: Any, scoring: ScoringConfig) -> float:
    """Converts one raw answer into points on the [-2, 2] scale."""
    if isinstance(question, LikertQuestion):
        points = scoring.likert_map.get(answer_key(answer), 0)
        return -points if question.reverse else points

    if isinstance(question, SliderQuestion):
        value = _to_number(answer)
        if value is None or not math.isfinite(value):
            return 0
        low, high = scoring.slider_range.min, scoring.slider_range.max
        # Not clamped: 150 on a [-2, 2] range gives 4
        points = low + (value / 100) * (high - low)
        return points if math.isfinite(points) else 0

    if isinstance(question, ScenarioQuestion):
        for option in question.options:
            if option.id == answer:
                return option.score
        return 0

    if isinstance(question, ABQuestion):
        return question.score_a if answer == "A" else question.score_b

    raise TypeError(f"Unsupported question type: {type(question).__name__}")


def normalize(raw: float, answered: int) -> int:
    if answered == 0:
        return NEUTRAL_SCORE
    lowest = POINT_FLOOR * answered
    normalized = ((raw - lowest) / (POINT_SPAN * answered)) * 100
    if not math.isfinite(normalized):
        # Accumulated slider points past the float range
        return NEUTRAL_SCORE
    return round_half_up(normalized)


def top2_label(blueprint: TestBlueprint, scores: Dict[str, int]) -> str:
    """
    Joins the pole labels of the two scales furthest from neutral.
    Ties keep scale declaration order.
    """
    labeling = blueprint.result_labeling
    ranked = sorted(
        blueprint.scales,
        key=lambda scale: abs(scores.get(scale.id, NEUTRAL_SCORE) - NEUTRAL_SCORE),
        reverse=True,
    )
    labels: List[str] = []
    for scale in ranked[:2]:
        score = scores.get(scale.id, NEUTRAL_SCORE)
        pole = labeling.labels_by_scale_high if score >= NEUTRAL_SCORE else labeling.labels_by_scale_low
        labels.append(pole.get(scale.id, ""))
    return " ".join(labels)


def compute_scores(blueprint: TestBlueprint, answers: Mapping) -> ScoringResult:
    """
    Scores a complete answer set against a blueprint.

    Args:
        blueprint: A validated TestBlueprint.
        answers: Mapping of question id to the raw answer value. Unknown ids
                 are ignored, missing ids do not count towards their scale.

    Returns:
        ScoringResult with one 0-100 score per declared scale and the label
        of the nearest profile, or a top-2 trait label when no profiles exist.
    """
    if not isinstance(answers, Mapping):
        raise InvalidAnswersError(
            f"answers must be a mapping of question id to value, got {type(answers).__name__}"
        )

    raw: Dict[str, float] = {scale.id: 0.0 for scale in blueprint.scales}
    counts: Dict[str, int] = {scale.id: 0 for scale in blueprint.scales}

    for question in blueprint.questions:
        # Only a missing key skips a question; an explicit null is still scored
        if question.id not in answers:
            continue
        if question.scale_id not in raw:
            continue
        raw[question.scale_id] += _question_points(question, answers[question.id], blueprint.scoring)
        counts[question.scale_id] += 1

    scores = {scale_id: normalize(raw[scale_id], counts[scale_id]) for scale_id in raw}
    logger.debug("Computed scores %s from %d answered question(s)", scores, sum(counts.values()))

    if blueprint.profiles:
        profile = assign_to_nearest_profile(scores, blueprint.profiles)
        if profile is not None:
            return ScoringResult(
                scores=scores,
                result_label=profile.name,
                profile_id=profile.id,
                profile_name=profile.name,
            )

    return ScoringResult(scores=scores, result_label=top2_label(blueprint, scores))
