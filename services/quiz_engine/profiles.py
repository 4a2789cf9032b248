import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

from .models import SCALE_IDS, ProfileDefinition, PrototypeVector

logger = logging.getLogger(__name__)

MISSING_SCORE = 50


def profile_distance(scores: Dict[str, float], prototype: PrototypeVector) -> float:
    """Euclidean distance between a score vector and a profile prototype over all five scales."""
    total = 0.0
    for scale_id in SCALE_IDS:
        diff = scores.get(scale_id, MISSING_SCORE) - getattr(prototype, scale_id)
        total += diff * diff
    return math.sqrt(total)


def rank_profiles(
    scores: Dict[str, float], profiles: Optional[Sequence[ProfileDefinition]]
) -> List[Tuple[ProfileDefinition, float]]:
    """Profiles paired with their distance, nearest first. Equal distances keep declaration order."""
    if not profiles:
        return []
    ranked = [(profile, profile_distance(scores, profile.prototype)) for profile in profiles]
    ranked.sort(key=lambda pair: pair[1])
    return ranked


def assign_to_nearest_profile(
    scores: Dict[str, float], profiles: Optional[Sequence[ProfileDefinition]]
) -> Optional[ProfileDefinition]:
    """
    Returns the profile whose prototype is closest to the scores.

    A profile replaces the current best only when strictly closer, so the
    first of several equidistant profiles wins. Returns None when there are
    no profiles.
    """
    if not profiles:
        return None

    best: Optional[ProfileDefinition] = None
    best_distance = math.inf
    for profile in profiles:
        distance = profile_distance(scores, profile.prototype)
        if distance < best_distance:
            best, best_distance = profile, distance

    if best is not None:
        logger.debug("Nearest profile '%s' at distance %.3f", best.id, best_distance)
    return best
