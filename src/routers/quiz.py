import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException

from config.settings import get_settings
from services.quiz_engine.attempts import (
    AttemptAlreadyFinishedError,
    AttemptNotFoundError,
    AttemptStore,
    DuplicateTestError,
    TestNotFoundError,
)
from services.quiz_engine.engine import QuizEngine
from services.quiz_engine.loader import BlueprintValidationError, load_blueprint_data
from services.quiz_engine.models import InvalidAnswersError
from services.quiz_engine.profiles import rank_profiles
from src.schemas.quiz import (
    AddVersionRequest,
    AddVersionResponse,
    AttemptStatusResponse,
    CreateTestRequest,
    CreateTestResponse,
    FinishAttemptRequest,
    FinishAttemptResponse,
    ProfileMatch,
    StartAttemptRequest,
    StartAttemptResponse,
    TestDetail,
    TestSummary,
    ValidateBlueprintResponse,
)

router = APIRouter()
logger = logging.getLogger(__name__)

CLOSEST_PROFILES = 3

_attempt_store = AttemptStore(max_attempts=get_settings().max_stored_attempts)


def get_attempt_store() -> AttemptStore:
    return _attempt_store


def _invalid_blueprint(e: BlueprintValidationError) -> HTTPException:
    return HTTPException(status_code=422, detail={"message": "Invalid blueprint", "errors": e.errors})


# --- Blueprints ---

@router.post("/blueprints/validate", response_model=ValidateBlueprintResponse)
async def validate_blueprint(document: Any = Body(...)):
    """Checks a blueprint document without registering it."""
    try:
        load_blueprint_data(document)
    except BlueprintValidationError as e:
        return ValidateBlueprintResponse(valid=False, errors=e.errors)
    return ValidateBlueprintResponse(valid=True, errors=[])


# --- Tests ---

@router.get("/tests", response_model=List[TestSummary])
async def list_tests(store: AttemptStore = Depends(get_attempt_store)):
    return [
        TestSummary(
            test_id=record.id,
            slug=record.slug,
            title=record.title,
            latest_version=record.latest.number,
            profile_count=len(record.latest.blueprint.profiles or []),
            attempt_count=store.count_attempts(record.id),
        )
        for record in store.list_tests()
    ]


@router.post("/tests", response_model=CreateTestResponse, status_code=201)
async def create_test(request: CreateTestRequest, store: AttemptStore = Depends(get_attempt_store)):
    try:
        record = store.create_test(
            title=request.title,
            blueprint=request.blueprint,
            slug=request.slug,
            description=request.description,
        )
    except BlueprintValidationError as e:
        logger.info(f"Rejected blueprint for test '{request.title}': {len(e.errors)} error(s)")
        raise _invalid_blueprint(e)
    except DuplicateTestError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.exception(f"Unexpected error creating test: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")
    return CreateTestResponse(test_id=record.id, slug=record.slug, version=record.latest.number)


@router.post("/tests/{test_id}/versions", response_model=AddVersionResponse, status_code=201)
async def add_test_version(
    test_id: str,
    request: AddVersionRequest,
    store: AttemptStore = Depends(get_attempt_store),
):
    try:
        version = store.add_version(test_id, request.blueprint)
    except BlueprintValidationError as e:
        raise _invalid_blueprint(e)
    except TestNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.exception(f"Unexpected error adding version to test {test_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")
    return AddVersionResponse(test_id=test_id, version=version.number)


@router.get("/tests/{slug}", response_model=TestDetail)
async def get_test(slug: str, store: AttemptStore = Depends(get_attempt_store)):
    """Test metadata and the latest version's questions, without their scoring data."""
    try:
        record = store.get_test_by_slug(slug)
    except TestNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    blueprint = record.latest.blueprint
    engine = QuizEngine(blueprint)
    return TestDetail(
        test_id=record.id,
        slug=record.slug,
        title=record.title,
        description=record.description,
        version=record.latest.number,
        intro=blueprint.intro.model_dump(),
        scales=[s.model_dump(by_alias=True) for s in blueprint.scales],
        questions=engine.get_questions(),
        images_enabled=bool(blueprint.images_enabled),
    )


# --- Attempts ---

@router.post("/attempts/start", response_model=StartAttemptResponse, status_code=201)
async def start_attempt(request: StartAttemptRequest, store: AttemptStore = Depends(get_attempt_store)):
    try:
        attempt = store.start_attempt(request.test_id)
    except TestNotFoundError:
        raise HTTPException(status_code=404, detail="Test not found")
    return StartAttemptResponse(attempt_id=attempt.id)


@router.post("/attempts/finish", response_model=FinishAttemptResponse)
async def finish_attempt(request: FinishAttemptRequest, store: AttemptStore = Depends(get_attempt_store)):
    """
    Scores the submitted answers and closes the attempt.
    Answers are used once for scoring and never stored.
    """
    try:
        attempt = store.get_attempt(request.attempt_id)
        result = store.finish_attempt(request.attempt_id, request.answers)
    except InvalidAnswersError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AttemptNotFoundError:
        raise HTTPException(status_code=404, detail="Attempt not found")
    except AttemptAlreadyFinishedError:
        raise HTTPException(status_code=400, detail="Attempt already finished")
    except Exception as e:
        logger.exception(f"Unexpected error finishing attempt {request.attempt_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")

    blueprint = store.get_test(attempt.test_id).get_version(attempt.version).blueprint
    closest = [
        ProfileMatch(id=profile.id, name=profile.name, distance=round(distance, 3))
        for profile, distance in rank_profiles(result.scores, blueprint.profiles)[:CLOSEST_PROFILES]
    ]

    return FinishAttemptResponse(
        success=True,
        scores=result.scores,
        result_label=result.result_label,
        profile_id=result.profile_id,
        profile_name=result.profile_name or result.result_label,
        closest_profiles=closest,
    )


@router.post("/attempts/answer", status_code=410)
async def submit_answer() -> Dict[str, str]:
    """Per-question submission is gone: answers are sent once to /attempts/finish."""
    raise HTTPException(
        status_code=410,
        detail="Per-question answers are no longer accepted. Submit all answers to /attempts/finish.",
    )


@router.get("/attempts/{attempt_id}", response_model=AttemptStatusResponse)
async def get_attempt(attempt_id: str, store: AttemptStore = Depends(get_attempt_store)):
    try:
        attempt = store.get_attempt(attempt_id)
    except AttemptNotFoundError:
        raise HTTPException(status_code=404, detail="Attempt not found")
    return AttemptStatusResponse(
        attempt_id=attempt.id,
        test_id=attempt.test_id,
        version=attempt.version,
        status=attempt.status,
        started_at=attempt.started_at,
        finished_at=attempt.finished_at,
        scores=attempt.scores,
        result_label=attempt.result_label,
        profile_id=attempt.profile_id,
        profile_name=attempt.profile_name,
    )
