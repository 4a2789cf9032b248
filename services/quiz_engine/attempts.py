import logging
import re
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, Field

from .loader import load_blueprint_data
from .models import InvalidAnswersError, ScoringResult, TestBlueprint
from .scoring import compute_scores

logger = logging.getLogger(__name__)


def slugify(title: str) -> str:
    """'Big Five: Quick!' -> 'big-five-quick'"""
    slug = title.lower().replace(" ", "-")
    return re.sub(r"[^\w-]", "", slug)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TestVersion(BaseModel):
    number: int
    blueprint: TestBlueprint
    created_at: datetime = Field(default_factory=_utcnow)

    __test__ = False


class TestRecord(BaseModel):
    id: str
    slug: str
    title: str
    description: Optional[str] = None
    versions: List[TestVersion] = []
    created_at: datetime = Field(default_factory=_utcnow)

    __test__ = False

    @property
    def latest(self) -> TestVersion:
        return self.versions[-1]

    def get_version(self, number: int) -> TestVersion:
        return self.versions[number - 1]


class AttemptRecord(BaseModel):
    id: str
    test_id: str
    version: int
    # "scoring" while a finish call holds the claim; the result lands together with "finished"
    status: Literal["in_progress", "scoring", "finished"] = "in_progress"
    started_at: datetime = Field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None
    scores: Optional[Dict[str, int]] = None
    result_label: Optional[str] = None
    profile_id: Optional[str] = None
    profile_name: Optional[str] = None


# Custom Error Classes
class TestNotFoundError(LookupError):
    __test__ = False


class AttemptNotFoundError(LookupError):
    pass


class AttemptAlreadyFinishedError(ValueError):
    pass


class DuplicateTestError(ValueError):
    pass


DEFAULT_MAX_ATTEMPTS = 100_000


class AttemptStore:
    """
    In-memory registry of tests, their immutable blueprint versions and user attempts.

    Only the scoring result of an attempt is kept; raw answers never are.
    Past max_attempts the oldest finished attempts are evicted first, then the
    oldest unfinished ones.
    """

    def __init__(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        self._lock = threading.Lock()
        self._max_attempts = max_attempts
        self._tests: Dict[str, TestRecord] = {}
        self._slugs: Dict[str, str] = {}
        self._attempts: Dict[str, AttemptRecord] = {}

    # --- Tests ---

    def create_test(
        self,
        title: str,
        blueprint: Any,
        slug: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TestRecord:
        """
        Registers a new test with the blueprint as version 1.

        Raises:
            BlueprintValidationError: if the blueprint is invalid.
            DuplicateTestError: if the slug is already taken.
        """
        validated = load_blueprint_data(blueprint)
        slug = slug or slugify(title)
        with self._lock:
            if slug in self._slugs:
                raise DuplicateTestError(f"A test with slug '{slug}' already exists")
            record = TestRecord(
                id=str(uuid.uuid4()),
                slug=slug,
                title=title,
                description=description,
                versions=[TestVersion(number=1, blueprint=validated)],
            )
            self._tests[record.id] = record
            self._slugs[slug] = record.id
        logger.info("Created test '%s' (%s)", slug, record.id)
        return record

    def add_version(self, test_id: str, blueprint: Any) -> TestVersion:
        """Appends a new blueprint version. Earlier versions and their attempts are untouched."""
        validated = load_blueprint_data(blueprint)
        with self._lock:
            record = self._tests.get(test_id)
            if record is None:
                raise TestNotFoundError(f"Test '{test_id}' not found")
            version = TestVersion(number=len(record.versions) + 1, blueprint=validated)
            record.versions.append(version)
        logger.info("Added version %d to test '%s'", version.number, record.slug)
        return version

    def get_test(self, test_id: str) -> TestRecord:
        record = self._tests.get(test_id)
        if record is None:
            raise TestNotFoundError(f"Test '{test_id}' not found")
        return record

    def get_test_by_slug(self, slug: str) -> TestRecord:
        test_id = self._slugs.get(slug)
        if test_id is None:
            raise TestNotFoundError(f"Test '{slug}' not found")
        return self._tests[test_id]

    def list_tests(self) -> List[TestRecord]:
        """Newest first."""
        with self._lock:
            records = list(self._tests.values())
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def count_attempts(self, test_id: str) -> int:
        with self._lock:
            return sum(1 for a in self._attempts.values() if a.test_id == test_id)

    # --- Attempts ---

    def start_attempt(self, test_id: str) -> AttemptRecord:
        """Opens an attempt pinned to the test's latest version."""
        with self._lock:
            record = self._tests.get(test_id)
            if record is None:
                raise TestNotFoundError(f"Test '{test_id}' not found")
            attempt = AttemptRecord(id=str(uuid.uuid4()), test_id=test_id, version=record.latest.number)
            self._attempts[attempt.id] = attempt
            self._evict_attempts(keep=attempt.id)
        logger.info("Started attempt %s on test '%s' v%d", attempt.id, record.slug, attempt.version)
        return attempt

    def _evict_attempts(self, keep: str) -> None:
        # Caller holds the lock. Attempts being scored are never evicted.
        overflow = len(self._attempts) - self._max_attempts
        if overflow <= 0:
            return
        finished = [a.id for a in self._attempts.values() if a.status == "finished"]
        open_ = [a.id for a in self._attempts.values() if a.status == "in_progress" and a.id != keep]
        evicted = (finished + open_)[:overflow]
        for attempt_id in evicted:
            del self._attempts[attempt_id]
        logger.info("Evicted %d attempt(s), store capped at %d", len(evicted), self._max_attempts)

    def get_attempt(self, attempt_id: str) -> AttemptRecord:
        attempt = self._attempts.get(attempt_id)
        if attempt is None:
            raise AttemptNotFoundError(f"Attempt '{attempt_id}' not found")
        return attempt

    def finish_attempt(self, attempt_id: str, answers: Mapping[str, Any]) -> ScoringResult:
        """
        Scores the answers against the attempt's pinned blueprint and stores the result.

        The attempt is claimed before scoring, so concurrent or repeated calls
        for one attempt produce exactly one result.

        Raises:
            InvalidAnswersError: answers is not a mapping.
            AttemptNotFoundError: unknown attempt id.
            AttemptAlreadyFinishedError: the attempt already has a result or is being scored.
        """
        if not isinstance(answers, Mapping):
            raise InvalidAnswersError(
                f"answers must be a mapping of question id to value, got {type(answers).__name__}"
            )

        with self._lock:
            attempt = self._attempts.get(attempt_id)
            if attempt is None:
                raise AttemptNotFoundError(f"Attempt '{attempt_id}' not found")
            if attempt.status != "in_progress":
                raise AttemptAlreadyFinishedError(f"Attempt '{attempt_id}' is already finished")
            attempt.status = "scoring"
            blueprint = self._tests[attempt.test_id].get_version(attempt.version).blueprint

        try:
            result = compute_scores(blueprint, answers)
        except Exception:
            with self._lock:
                attempt.status = "in_progress"
            raise

        with self._lock:
            attempt.scores = dict(result.scores)
            attempt.result_label = result.result_label
            attempt.profile_id = result.profile_id
            attempt.profile_name = result.profile_name
            attempt.finished_at = _utcnow()
            attempt.status = "finished"
        logger.info("Finished attempt %s with result '%s'", attempt_id, result.result_label)
        return result
