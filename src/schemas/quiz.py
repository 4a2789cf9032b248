from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ValidateBlueprintResponse(BaseModel):
    valid: bool
    errors: List[str] = []


class CreateTestRequest(BaseModel):
    title: str = Field(..., min_length=1)
    slug: Optional[str] = None
    description: Optional[str] = None
    blueprint: Dict[str, Any]


class CreateTestResponse(_CamelModel):
    test_id: str = Field(..., alias="testId")
    slug: str
    version: int


class AddVersionRequest(BaseModel):
    blueprint: Dict[str, Any]


class AddVersionResponse(_CamelModel):
    test_id: str = Field(..., alias="testId")
    version: int


class TestSummary(_CamelModel):
    test_id: str = Field(..., alias="testId")
    slug: str
    title: str
    latest_version: int = Field(..., alias="latestVersion")
    profile_count: int = Field(..., alias="profileCount")
    attempt_count: int = Field(..., alias="attemptCount")

    __test__ = False


class TestDetail(_CamelModel):
    test_id: str = Field(..., alias="testId")
    slug: str
    title: str
    description: Optional[str] = None
    version: int
    intro: Dict[str, Any]
    scales: List[Dict[str, Any]]
    questions: List[Dict[str, Any]]
    images_enabled: bool = Field(False, alias="imagesEnabled")

    __test__ = False


class StartAttemptRequest(_CamelModel):
    test_id: str = Field(..., alias="testId")


class StartAttemptResponse(_CamelModel):
    attempt_id: str = Field(..., alias="attemptId")


class FinishAttemptRequest(_CamelModel):
    attempt_id: str = Field(..., alias="attemptId")
    # Left untyped: a non-object answers document is rejected by the store with a 400
    answers: Any = None


class ProfileMatch(BaseModel):
    id: str
    name: str
    distance: float


class FinishAttemptResponse(_CamelModel):
    success: bool = True
    scores: Dict[str, int]
    result_label: str = Field(..., alias="resultLabel")
    profile_id: Optional[str] = Field(None, alias="profileId")
    profile_name: Optional[str] = Field(None, alias="profileName")
    closest_profiles: List[ProfileMatch] = Field([], alias="closestProfiles")


class AttemptStatusResponse(_CamelModel):
    attempt_id: str = Field(..., alias="attemptId")
    test_id: str = Field(..., alias="testId")
    version: int
    status: str
    started_at: datetime = Field(..., alias="startedAt")
    finished_at: Optional[datetime] = Field(None, alias="finishedAt")
    scores: Optional[Dict[str, int]] = None
    result_label: Optional[str] = Field(None, alias="resultLabel")
    profile_id: Optional[str] = Field(None, alias="profileId")
    profile_name: Optional[str] = Field(None, alias="profileName")
