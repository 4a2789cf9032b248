from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, FiniteFloat, field_validator

SUPPORTED_BLUEPRINT_VERSION = "1.0"

ScaleId = Literal["C", "E", "A", "N", "O"]
SCALE_IDS: tuple = ("C", "E", "A", "N", "O")
ScenarioScore = Literal[-2, -1, 0, 1, 2]


class Scale(BaseModel):
    id: ScaleId
    name: str
    low_label: str = Field(..., alias="lowLabel")
    high_label: str = Field(..., alias="highLabel")

    model_config = ConfigDict(populate_by_name=True)


class _QuestionBase(BaseModel):
    id: str
    scale_id: ScaleId = Field(..., alias="scaleId")
    text: str
    # Presentation only, never read by scoring
    image_prompt: Optional[str] = Field(None, alias="imagePrompt")
    image_url: Optional[str] = Field(None, alias="imageUrl")

    # A question carrying another variant's fields is rejected
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class LikertQuestion(_QuestionBase):
    type: Literal["likert"]
    reverse: Optional[bool] = None


class SliderQuestion(_QuestionBase):
    type: Literal["slider"]
    left_label: str = Field(..., alias="leftLabel")
    right_label: str = Field(..., alias="rightLabel")


class ScenarioOption(BaseModel):
    id: str
    label: str
    score: ScenarioScore

    @field_validator("score", mode="before")
    @classmethod
    def integral_score(cls, value: Any) -> Any:
        # JSON has no int/float distinction: 1.0 is 1, but 0.5 and True are not scores
        if isinstance(value, bool):
            raise ValueError("score must be one of -2, -1, 0, 1, 2")
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value


class ScenarioQuestion(_QuestionBase):
    type: Literal["scenario"]
    options: List[ScenarioOption]


class ABQuestion(_QuestionBase):
    type: Literal["ab"]
    option_a: str = Field(..., alias="optionA")
    option_b: str = Field(..., alias="optionB")
    score_a: FiniteFloat = Field(..., alias="scoreA")
    score_b: FiniteFloat = Field(..., alias="scoreB")


Question = Annotated[
    Union[LikertQuestion, SliderQuestion, ScenarioQuestion, ABQuestion],
    Field(discriminator="type"),
]


class SliderRange(BaseModel):
    min: FiniteFloat
    max: FiniteFloat


class ScoringConfig(BaseModel):
    likert_map: Dict[str, FiniteFloat] = Field(..., alias="likertMap")
    slider_range: SliderRange = Field(..., alias="sliderRange")

    model_config = ConfigDict(populate_by_name=True)


class PrototypeVector(BaseModel):
    """Coordinates of an archetype in trait space, one 0-100 value per scale."""
    C: FiniteFloat = Field(..., ge=0, le=100)
    E: FiniteFloat = Field(..., ge=0, le=100)
    A: FiniteFloat = Field(..., ge=0, le=100)
    N: FiniteFloat = Field(..., ge=0, le=100)
    O: FiniteFloat = Field(..., ge=0, le=100)


class ProfileDefinition(BaseModel):
    id: str  # slug, e.g. "the-architect"
    name: str
    one_line_hook: str = Field(..., alias="oneLineHook")
    teaser_bullets: List[str] = Field(..., alias="teaserBullets")
    share_title: Optional[str] = Field(None, alias="shareTitle")
    prototype: PrototypeVector

    model_config = ConfigDict(populate_by_name=True)


class ResultLabeling(BaseModel):
    # Informational only: scoring branches on whether profiles are present
    method: Literal["top2", "nearest-prototype"]
    labels_by_scale_high: Dict[ScaleId, str] = Field(..., alias="labelsByScaleHigh")
    labels_by_scale_low: Dict[ScaleId, str] = Field(..., alias="labelsByScaleLow")

    model_config = ConfigDict(populate_by_name=True)


class Intro(BaseModel):
    headline: str
    subhead: str
    disclaimer: str


class Paywall(BaseModel):
    price_label: str = Field(..., alias="priceLabel")
    bullets: List[str]

    model_config = ConfigDict(populate_by_name=True)


class ReportSection(BaseModel):
    id: str
    title: str
    instruction: str


class ReportTemplate(BaseModel):
    sections: List[ReportSection]


class TestBlueprint(BaseModel):
    """Declarative definition of one quiz: scales, questions, scoring rules and archetypes."""
    version: Literal["1.0"]
    title: str
    intro: Intro
    scales: List[Scale]
    questions: List[Question]
    scoring: ScoringConfig
    profiles: Optional[List[ProfileDefinition]] = None
    result_labeling: ResultLabeling = Field(..., alias="resultLabeling")
    paywall: Paywall
    report_template: ReportTemplate = Field(..., alias="reportTemplate")
    images_enabled: Optional[bool] = Field(None, alias="imagesEnabled")

    model_config = ConfigDict(populate_by_name=True)

    __test__ = False  # not a pytest test class

    def to_document(self) -> Dict[str, Any]:
        """Wire representation (camelCase keys, unset optionals omitted)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ScoringResult(BaseModel):
    scores: Dict[str, int]
    result_label: str = Field(..., alias="resultLabel")
    profile_id: Optional[str] = Field(None, alias="profileId")
    profile_name: Optional[str] = Field(None, alias="profileName")

    model_config = ConfigDict(populate_by_name=True)


# Custom Error Classes
class InvalidAnswersError(TypeError):
    """Raised when the answers document is not a mapping of question id to value."""
    pass
