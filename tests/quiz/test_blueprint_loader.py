import copy
import json

import pytest
import yaml

from services.quiz_engine.loader import (
    BlueprintValidationError,
    load_blueprint_data,
    load_blueprint_from_file,
)
from services.quiz_engine.models import ABQuestion, LikertQuestion, ScenarioQuestion, SliderQuestion, TestBlueprint


def _errors_for(data):
    with pytest.raises(BlueprintValidationError) as excinfo:
        load_blueprint_data(data)
    return excinfo.value.errors


# --- Valid documents ---

def test_load_minimal_blueprint(blueprint_data):
    blueprint = load_blueprint_data(blueprint_data)
    assert isinstance(blueprint, TestBlueprint)
    assert blueprint.title == "Mini Quiz"
    assert [s.id for s in blueprint.scales] == ["C", "E", "A", "N", "O"]
    assert [type(q) for q in blueprint.questions] == [
        LikertQuestion, LikertQuestion, SliderQuestion, ScenarioQuestion, ABQuestion
    ]
    assert blueprint.questions[1].reverse is True
    assert blueprint.profiles is None
    assert blueprint.scoring.likert_map["5"] == 2


def test_revalidation_is_idempotent(blueprint_with_profiles):
    first = load_blueprint_data(blueprint_with_profiles)
    second = load_blueprint_data(first.to_document())
    assert first == second
    assert first.to_document() == second.to_document()


def test_validation_does_not_mutate_input(blueprint_data):
    snapshot = copy.deepcopy(blueprint_data)
    load_blueprint_data(blueprint_data)
    assert blueprint_data == snapshot


def test_model_instance_is_revalidated(blueprint_data):
    blueprint = load_blueprint_data(blueprint_data)
    assert load_blueprint_data(blueprint) == blueprint


def test_integral_float_scenario_score_is_accepted(blueprint_data):
    blueprint_data["questions"][3]["options"][0]["score"] = 2.0
    blueprint = load_blueprint_data(blueprint_data)
    assert blueprint.questions[3].options[0].score == 2


def test_subset_of_scales_is_allowed(blueprint_data):
    blueprint_data["scales"] = [s for s in blueprint_data["scales"] if s["id"] != "N"]
    blueprint = load_blueprint_data(blueprint_data)
    assert [s.id for s in blueprint.scales] == ["C", "E", "A", "O"]


def test_optional_image_fields(blueprint_data):
    blueprint_data["imagesEnabled"] = True
    blueprint_data["questions"][0]["imagePrompt"] = "a tidy desk"
    blueprint = load_blueprint_data(blueprint_data)
    assert blueprint.images_enabled is True
    assert blueprint.questions[0].image_prompt == "a tidy desk"


# --- Structural violations ---

def test_wrong_version_rejected(blueprint_data):
    blueprint_data["version"] = "2.0"
    errors = _errors_for(blueprint_data)
    assert any(e.startswith("version:") for e in errors)


def test_numeric_version_rejected(blueprint_data):
    blueprint_data["version"] = 1.0
    errors = _errors_for(blueprint_data)
    assert any(e.startswith("version:") for e in errors)


def test_unknown_scale_code_rejected(blueprint_data):
    blueprint_data["scales"][0]["id"] = "X"
    errors = _errors_for(blueprint_data)
    assert any(e.startswith("scales.0.id:") for e in errors)


def test_unknown_question_type_rejected(blueprint_data):
    blueprint_data["questions"][0]["type"] = "essay"
    errors = _errors_for(blueprint_data)
    assert any(e.startswith("questions.0") for e in errors)


def test_fields_of_another_variant_rejected(blueprint_data):
    blueprint_data["questions"][0]["options"] = [{"id": "x", "label": "X", "score": 1}]
    errors = _errors_for(blueprint_data)
    assert any(e.startswith("questions.0") and "options" in e for e in errors)


def test_slider_requires_labels(blueprint_data):
    del blueprint_data["questions"][2]["leftLabel"]
    errors = _errors_for(blueprint_data)
    assert any(e.startswith("questions.2") and "leftLabel" in e for e in errors)


@pytest.mark.parametrize("bad_score", [3, -3, 0.5, True])
def test_scenario_score_outside_allowed_set_rejected(blueprint_data, bad_score):
    blueprint_data["questions"][3]["options"][1]["score"] = bad_score
    errors = _errors_for(blueprint_data)
    assert any(e.startswith("questions.3") and "score" in e for e in errors)


def test_unknown_labeling_method_rejected(blueprint_data):
    blueprint_data["resultLabeling"]["method"] = "random"
    errors = _errors_for(blueprint_data)
    assert any(e.startswith("resultLabeling.method:") for e in errors)


def test_prototype_out_of_range_rejected(blueprint_with_profiles):
    blueprint_with_profiles["profiles"][0]["prototype"]["C"] = 101
    errors = _errors_for(blueprint_with_profiles)
    assert any(e.startswith("profiles.0.prototype.C:") for e in errors)


@pytest.mark.parametrize("bad_number", [float("nan"), float("inf"), float("-inf")])
def test_non_finite_scoring_numbers_rejected(blueprint_data, bad_number):
    blueprint_data["scoring"]["likertMap"]["4"] = bad_number
    blueprint_data["scoring"]["sliderRange"]["max"] = bad_number
    blueprint_data["questions"][4]["scoreA"] = bad_number
    errors = _errors_for(blueprint_data)
    assert any(e.startswith("scoring.likertMap.4:") for e in errors)
    assert any(e.startswith("scoring.sliderRange.max:") for e in errors)
    assert any(e.startswith("questions.4") and "scoreA" in e for e in errors)


def test_nan_prototype_rejected(blueprint_with_profiles):
    blueprint_with_profiles["profiles"][1]["prototype"]["O"] = float("nan")
    errors = _errors_for(blueprint_with_profiles)
    assert any(e.startswith("profiles.1.prototype.O:") for e in errors)


def test_non_finite_numbers_from_json_file_rejected(tmp_path, blueprint_data):
    # json.dumps writes NaN/Infinity literals, which json.load accepts back
    blueprint_data["scoring"]["likertMap"]["1"] = float("nan")
    path = tmp_path / "quiz.json"
    path.write_text(json.dumps(blueprint_data))
    with pytest.raises(BlueprintValidationError) as excinfo:
        load_blueprint_from_file(path)
    assert any(e.startswith("scoring.likertMap.1:") for e in excinfo.value.errors)


def test_all_violations_reported_together(blueprint_data):
    blueprint_data["version"] = "0.9"
    blueprint_data["scales"][1]["id"] = "Z"
    del blueprint_data["paywall"]
    errors = _errors_for(blueprint_data)
    assert len(errors) >= 3
    assert any(e.startswith("version:") for e in errors)
    assert any(e.startswith("scales.1.id:") for e in errors)
    assert any(e.startswith("paywall:") for e in errors)


def test_non_object_document_rejected():
    errors = _errors_for(["not", "a", "blueprint"])
    assert errors == ["<root>: expected an object, got list"]


def test_error_message_summarizes_errors(blueprint_data):
    blueprint_data["version"] = "2.0"
    with pytest.raises(BlueprintValidationError) as excinfo:
        load_blueprint_data(blueprint_data)
    assert str(excinfo.value).startswith("Invalid blueprint: version:")
    assert isinstance(excinfo.value, ValueError)


# --- Cross-reference checks ---

def test_duplicate_question_ids_rejected(blueprint_data):
    blueprint_data["questions"][1]["id"] = "c1"
    errors = _errors_for(blueprint_data)
    assert errors == ["questions: duplicate question id 'c1'"]


def test_duplicate_scale_ids_rejected(blueprint_data):
    blueprint_data["scales"].append(copy.deepcopy(blueprint_data["scales"][0]))
    errors = _errors_for(blueprint_data)
    assert "scales: duplicate scale id 'C'" in errors


def test_question_on_undeclared_scale_rejected(blueprint_data):
    blueprint_data["scales"] = [s for s in blueprint_data["scales"] if s["id"] != "O"]
    errors = _errors_for(blueprint_data)
    assert len(errors) == 1
    assert errors[0].startswith("questions.4.scaleId:")
    assert "'O'" in errors[0]


def test_duplicate_profile_ids_rejected(blueprint_with_profiles):
    blueprint_with_profiles["profiles"][1]["id"] = "the-low"
    errors = _errors_for(blueprint_with_profiles)
    assert errors == ["profiles: duplicate profile id 'the-low'"]


# --- Files ---

def test_load_from_yaml_file(tmp_path, blueprint_data):
    path = tmp_path / "quiz.yml"
    path.write_text(yaml.safe_dump(blueprint_data), encoding="utf-8")
    assert load_blueprint_from_file(path) == load_blueprint_data(blueprint_data)


def test_load_from_json_file(tmp_path, blueprint_data):
    path = tmp_path / "quiz.json"
    path.write_text(json.dumps(blueprint_data), encoding="utf-8")
    assert load_blueprint_from_file(str(path)).title == "Mini Quiz"


def test_missing_file(tmp_path):
    with pytest.raises(BlueprintValidationError, match="File not found"):
        load_blueprint_from_file(tmp_path / "nope.yml")


def test_malformed_yaml(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("title: [unclosed\n", encoding="utf-8")
    with pytest.raises(BlueprintValidationError, match="Error parsing YAML"):
        load_blueprint_from_file(path)


def test_malformed_json(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(BlueprintValidationError, match="Error parsing JSON"):
        load_blueprint_from_file(path)


def test_empty_file(tmp_path):
    path = tmp_path / "empty.yml"
    path.write_text("", encoding="utf-8")
    with pytest.raises(BlueprintValidationError, match="empty or invalid"):
        load_blueprint_from_file(path)


def test_bundled_big_five_blueprint(big_five_path):
    blueprint = load_blueprint_from_file(big_five_path)
    assert blueprint.title == "Big Five Personality Discovery"
    assert len(blueprint.questions) == 30
    assert len(blueprint.profiles) == 16
    assert blueprint.profiles[0].id == "the-architect"
    assert blueprint.result_labeling.labels_by_scale_low["N"] == "Steady"
    assert {q.type for q in blueprint.questions} == {"likert", "slider", "scenario", "ab"}
