import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .loader import load_blueprint_data, load_blueprint_from_file
from .models import ProfileDefinition, ScoringResult, TestBlueprint
from .profiles import rank_profiles
from .scoring import compute_scores

logger = logging.getLogger(__name__)

DEFAULT_BLUEPRINT_PATH = "assets/big_five_blueprint.yml"


class QuizEngine:
    """
    Holds one validated blueprint and scores answer sets against it.
    """
    def __init__(self, blueprint: Union[str, Path, Dict[str, Any], TestBlueprint] = DEFAULT_BLUEPRINT_PATH):
        """
        Initializes the engine from a blueprint file, a raw document or a model.

        Args:
            blueprint: Path to a .yml/.yaml/.json blueprint, a blueprint dict,
                       or an already constructed TestBlueprint.

        Raises:
            BlueprintValidationError: if the blueprint is missing or invalid.
        """
        if isinstance(blueprint, (str, Path)):
            self.blueprint = load_blueprint_from_file(blueprint)
            logger.info("Loaded blueprint '%s' from %s", self.blueprint.title, blueprint)
        else:
            self.blueprint = load_blueprint_data(blueprint)
        self._build_lookup_maps()

    def _build_lookup_maps(self):
        """Builds dictionaries for quick lookup of scales, questions and profiles."""
        self.scales = {scale.id: scale for scale in self.blueprint.scales}
        self.questions = {q.id: q for q in self.blueprint.questions}
        self.profiles = {p.id: p for p in self.blueprint.profiles or []}

    def get_questions(self, include_scoring: bool = False) -> List[Dict[str, Any]]:
        """
        Returns the questions in blueprint order for presentation.
        Scoring data (likert reversal, option scores, AB scores) is stripped
        unless include_scoring is set.
        """
        questions = []
        for q in self.blueprint.questions:
            data = q.model_dump(mode="json", by_alias=True, exclude_none=True)
            if not include_scoring:
                data.pop("reverse", None)
                data.pop("scoreA", None)
                data.pop("scoreB", None)
                if "options" in data:
                    data["options"] = [{"id": o["id"], "label": o["label"]} for o in data["options"]]
            questions.append(data)
        return questions

    def get_profile(self, profile_id: str) -> Optional[ProfileDefinition]:
        return self.profiles.get(profile_id)

    def calculate_scores(self, answers: Mapping[str, Any]) -> ScoringResult:
        """Scores a complete answer set. See compute_scores."""
        return compute_scores(self.blueprint, answers)

    def closest_profiles(self, scores: Dict[str, float], top_n: int = 3) -> List[Tuple[ProfileDefinition, float]]:
        """The top_n profiles nearest to the given scores with their distances."""
        return rank_profiles(scores, self.blueprint.profiles)[:top_n]
