import json
import logging
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml
from pydantic import ValidationError

from services.quiz_engine.models import TestBlueprint

logger = logging.getLogger(__name__)


class BlueprintValidationError(ValueError):
    """Aggregate error describing every structural violation found in a blueprint document."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        summary = "; ".join(self.errors) if self.errors else "unknown error"
        super().__init__(f"Invalid blueprint: {summary}")


def _format_pydantic_errors(exc: ValidationError) -> List[str]:
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ())) or "<root>"
        messages.append(f"{location}: {err.get('msg', 'invalid value')}")
    return messages


def _duplicates(values: List[str]) -> List[str]:
    return [value for value, count in Counter(values).items() if count > 1]


def check_blueprint_integrity(blueprint: TestBlueprint) -> List[str]:
    """
    Cross-reference checks the schema alone cannot express.
    Returns a list of problems; empty when the blueprint is consistent.
    """
    problems = []

    scale_ids = [scale.id for scale in blueprint.scales]
    for scale_id in _duplicates(scale_ids):
        problems.append(f"scales: duplicate scale id '{scale_id}'")

    for question_id in _duplicates([q.id for q in blueprint.questions]):
        problems.append(f"questions: duplicate question id '{question_id}'")

    declared = set(scale_ids)
    for index, question in enumerate(blueprint.questions):
        if question.scale_id not in declared:
            problems.append(
                f"questions.{index}.scaleId: question '{question.id}' references undeclared scale '{question.scale_id}'"
            )

    for profile_id in _duplicates([p.id for p in blueprint.profiles or []]):
        problems.append(f"profiles: duplicate profile id '{profile_id}'")

    return problems


def load_blueprint_data(data: Union[Dict[str, Any], TestBlueprint]) -> TestBlueprint:
    """
    Validates a raw blueprint document against the TestBlueprint model
    and performs the cross-reference checks.

    Raises:
        BlueprintValidationError: listing every violation found.
    """
    if isinstance(data, TestBlueprint):
        data = data.to_document()
    if not isinstance(data, dict):
        raise BlueprintValidationError([f"<root>: expected an object, got {type(data).__name__}"])

    try:
        blueprint = TestBlueprint.model_validate(data)
    except ValidationError as e:
        errors = _format_pydantic_errors(e)
        logger.info("Blueprint rejected with %d structural error(s)", len(errors))
        raise BlueprintValidationError(errors) from e

    problems = check_blueprint_integrity(blueprint)
    if problems:
        logger.info("Blueprint '%s' rejected with %d integrity error(s)", blueprint.title, len(problems))
        raise BlueprintValidationError(problems)

    return blueprint


def load_blueprint_from_file(file_path: Union[str, Path]) -> TestBlueprint:
    """
    Loads a blueprint from a JSON or YAML file, validates it,
    and returns a TestBlueprint object.
    """
    path = Path(file_path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except FileNotFoundError:
        raise BlueprintValidationError([f"File not found: {path}"])
    except json.JSONDecodeError as e:
        raise BlueprintValidationError([f"Error parsing JSON file {path}: {e}"])
    except yaml.YAMLError as e:
        raise BlueprintValidationError([f"Error parsing YAML file {path}: {e}"])

    if data is None:
        raise BlueprintValidationError([f"Blueprint file is empty or invalid: {path}"])

    return load_blueprint_data(data)
