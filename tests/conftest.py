import copy
from pathlib import Path

import pytest

from config.settings import get_settings

ROOT = Path(__file__).resolve().parent.parent

LIKERT_MAP = {"1": -2, "2": -1, "3": 0, "4": 1, "5": 2}

# One question of each kind; N is deliberately left without questions.
MINIMAL_BLUEPRINT = {
    "version": "1.0",
    "title": "Mini Quiz",
    "intro": {
        "headline": "Headline",
        "subhead": "Subhead",
        "disclaimer": "For fun only.",
    },
    "scales": [
        {"id": "C", "name": "Conscientiousness", "lowLabel": "Spontaneous", "highLabel": "Planner"},
        {"id": "E", "name": "Extraversion", "lowLabel": "Reserved", "highLabel": "Social"},
        {"id": "A", "name": "Agreeableness", "lowLabel": "Straight-shooter", "highLabel": "Connector"},
        {"id": "N", "name": "Negative Emotionality", "lowLabel": "Steady", "highLabel": "Vigilant"},
        {"id": "O", "name": "Openness", "lowLabel": "Traditional", "highLabel": "Explorer"},
    ],
    "questions": [
        {"id": "c1", "type": "likert", "scaleId": "C", "text": "I plan ahead."},
        {"id": "c2", "type": "likert", "scaleId": "C", "text": "I procrastinate.", "reverse": True},
        {
            "id": "e1",
            "type": "slider",
            "scaleId": "E",
            "text": "Parties?",
            "leftLabel": "Never",
            "rightLabel": "Always",
        },
        {
            "id": "a1",
            "type": "scenario",
            "scaleId": "A",
            "text": "A friend hurts you.",
            "options": [
                {"id": "talk", "label": "Talk it through", "score": 2},
                {"id": "ignore", "label": "Let it go", "score": 1},
                {"id": "snap", "label": "Snap back", "score": -2},
            ],
        },
        {
            "id": "o1",
            "type": "ab",
            "scaleId": "O",
            "text": "New things?",
            "optionA": "Try them",
            "optionB": "Stick to what works",
            "scoreA": 2,
            "scoreB": -2,
        },
    ],
    "scoring": {"likertMap": LIKERT_MAP, "sliderRange": {"min": -2, "max": 2}},
    "resultLabeling": {
        "method": "top2",
        "labelsByScaleHigh": {"C": "Planner", "E": "Social", "A": "Connector", "N": "Vigilant", "O": "Explorer"},
        "labelsByScaleLow": {"C": "Spontaneous", "E": "Reserved", "A": "Straight-shooter", "N": "Steady", "O": "Traditional"},
    },
    "paywall": {"priceLabel": "$3.00", "bullets": ["Full report"]},
    "reportTemplate": {
        "sections": [{"id": "overview", "title": "Overview", "instruction": "Summarize."}],
    },
}


def make_profile(profile_id, name, **prototype):
    return {
        "id": profile_id,
        "name": name,
        "oneLineHook": f"{name} hook",
        "teaserBullets": ["One", "Two"],
        "prototype": prototype,
    }


@pytest.fixture
def blueprint_data():
    """A fresh, mutable copy of the minimal valid blueprint document."""
    return copy.deepcopy(MINIMAL_BLUEPRINT)


@pytest.fixture
def blueprint_with_profiles(blueprint_data):
    blueprint_data["resultLabeling"]["method"] = "nearest-prototype"
    blueprint_data["profiles"] = [
        make_profile("the-low", "The Low", C=0, E=0, A=0, N=0, O=0),
        make_profile("the-high", "The High", C=100, E=100, A=100, N=100, O=100),
    ]
    return blueprint_data


@pytest.fixture
def big_five_path() -> Path:
    return ROOT / "assets" / "big_five_blueprint.yml"


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    """Settings are cached per process; tests that tweak QUIZ_* env vars get a clean read."""
    monkeypatch.delenv("QUIZ_RATE_LIMIT_BACKEND", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
