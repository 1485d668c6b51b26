import asyncio
import uuid
from datetime import datetime
from enum import IntEnum
from typing import Callable, Dict, Iterable, List, Optional, Set
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from services.schedule_service import ScheduleService
from services.progress_service import ProgressService
from services.survey_service import SurveyService, survey_period_over
from core.config import settings
from core.exceptions import InternalError, NotFoundError, PlayEngineError
from core.logger import logger
from utils.dates import add_months, as_utc, to_microseconds, utcnow


class ScheduledQuizStatus(IntEnum):
    # Values are part of the client contract
    CAN_START = 0
    CAN_CONTINUE = 1
    HAS_FINISHED = 2
    IS_OVER = 3
    NOT_AVAILABLE = 4


class ScheduledQuizStatusResult(BaseModel):
    """Status of one scheduled quiz for one user. Never persisted."""
    model_config = ConfigDict(populate_by_name=True)

    scheduled_quiz_id: str = Field(..., alias="scheduledQuizId")
    status: Optional[ScheduledQuizStatus] = Field(None, alias="quizStatus")
    available_activities: Optional[List[str]] = Field(None, alias="availableActivities")
    # Microseconds
    available_play_time: Optional[int] = Field(None, alias="availablePlayTime")
    available_survey_questions: Optional[List[dict]] = Field(None, alias="availableSurveyQuestions")
    is_old: bool = Field(False, alias="isOld", exclude=True)


def is_old_quiz(end: datetime, now: datetime) -> bool:
    return now > end and add_months(end, settings.OLD_QUIZ_CUTOFF_MONTHS) < now


def max_concurrent_evaluations() -> int:
    # Each evaluation holds two pooled connections while it reads progress
    return max(1, (settings.DB_POOL_SIZE + settings.DB_MAX_OVERFLOW) // 2)


def decide_status(
    *,
    scheduled_quiz_id: str,
    start: datetime,
    end: datetime,
    play_duration: int,
    possible: List[str],
    answered: Set[str],
    play_started_at: Optional[datetime],
    survey_questions: Optional[List[dict]],
    now: datetime,
) -> ScheduledQuizStatusResult:
    """Pure status decision for a user and a scheduled quiz.

    ``play_started_at`` is the server timestamp of the user's start record, or None
    if the user never started. ``survey_questions`` is only consulted once play
    has started.
    """
    if now < start:
        return ScheduledQuizStatusResult(scheduled_quiz_id=scheduled_quiz_id, status=ScheduledQuizStatus.NOT_AVAILABLE)

    is_within_window = start <= now < end
    available = [a for a in possible if a not in answered]

    if play_started_at is None:
        if is_within_window:
            # Not filtered by answers: play has not begun
            return ScheduledQuizStatusResult(
                scheduled_quiz_id=scheduled_quiz_id,
                status=ScheduledQuizStatus.CAN_START,
                available_activities=list(possible),
                available_play_time=play_duration,
            )
        return ScheduledQuizStatusResult(scheduled_quiz_id=scheduled_quiz_id, status=ScheduledQuizStatus.IS_OVER)

    elapsed = to_microseconds(now - play_started_at)
    remaining = (play_duration or 0) - elapsed

    has_finished = len(available) == 0
    has_run_out_of_time = remaining <= 0

    if survey_period_over(start, end, now):
        survey_questions = None

    if has_finished or has_run_out_of_time:
        return ScheduledQuizStatusResult(
            scheduled_quiz_id=scheduled_quiz_id,
            status=ScheduledQuizStatus.HAS_FINISHED,
            available_survey_questions=survey_questions,
        )
    if is_within_window:
        return ScheduledQuizStatusResult(
            scheduled_quiz_id=scheduled_quiz_id,
            status=ScheduledQuizStatus.CAN_CONTINUE,
            available_activities=available,
            available_play_time=max(0, remaining),
        )
    # Window closed mid-play with activities and time left
    return ScheduledQuizStatusResult(
        scheduled_quiz_id=scheduled_quiz_id,
        status=ScheduledQuizStatus.HAS_FINISHED,
        available_survey_questions=survey_questions,
    )


class StatusService:
    """Evaluates scheduled quiz statuses for a user.

    Each storage read runs on its own short-lived session so reads can be issued
    concurrently. ``survey_resolver`` replaces the default ``SurveyService``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        survey_resolver=None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.survey_resolver = survey_resolver
        self.clock = clock

    async def _read_answered(self, user_id: uuid.UUID, scheduled_quiz_id: uuid.UUID) -> Set[str]:
        async with self.session_factory() as db:
            return await ProgressService(db).get_answered_activity_ids(user_id, scheduled_quiz_id)

    async def _read_play_start(self, user_id: uuid.UUID, scheduled_quiz_id: uuid.UUID):
        async with self.session_factory() as db:
            return await ProgressService(db).get_play_start(user_id, scheduled_quiz_id)

    async def _read_progress(self, user_id: uuid.UUID, scheduled_quiz_id: uuid.UUID):
        """Answered activity ids and the start record, read concurrently.

        Both reads are always awaited to completion before a failure is raised.
        """
        answered, play_start = await asyncio.gather(
            self._read_answered(user_id, scheduled_quiz_id),
            self._read_play_start(user_id, scheduled_quiz_id),
            return_exceptions=True,
        )
        for outcome in (answered, play_start):
            if isinstance(outcome, SQLAlchemyError):
                logger.error(
                    "Failed to read play progress",
                    scheduled_quiz_id=str(scheduled_quiz_id),
                    user_id=str(user_id),
                    error=str(outcome),
                )
                raise InternalError("Failed to read play progress.") from outcome
            if isinstance(outcome, BaseException):
                raise outcome
        return answered, play_start

    async def _survey_status(self, user_id, scheduled_quiz, answered, available):
        try:
            if self.survey_resolver is not None:
                return await self.survey_resolver.status_for(user_id, scheduled_quiz, answered, available)
            async with self.session_factory() as db:
                return await SurveyService(db, clock=self.clock).status_for(user_id, scheduled_quiz, answered, available)
        except PlayEngineError:
            raise
        except Exception as e:
            logger.error("Survey status could not be checked", scheduled_quiz_id=str(scheduled_quiz.id), error=str(e))
            raise InternalError("Survey status could not be checked.") from e

    async def evaluate(self, scheduled_quiz_id: uuid.UUID, user_id: uuid.UUID, exclude_old: bool = False) -> ScheduledQuizStatusResult:
        sq_key = str(scheduled_quiz_id)
        try:
            async with self.session_factory() as db:
                schedule = ScheduleService(db)
                scheduled_quiz = await schedule.resolve(scheduled_quiz_id)
                possible = await schedule.activities_of(scheduled_quiz.quiz_id)
        except SQLAlchemyError as e:
            logger.error("Scheduled quiz lookup failed", scheduled_quiz_id=sq_key, error=str(e))
            raise InternalError("Scheduled quiz lookup failed.") from e

        if not scheduled_quiz.start_date_time or not scheduled_quiz.end_date_time:
            logger.warning("Scheduled quiz missing start/end date", scheduled_quiz_id=sq_key)
            raise NotFoundError("Scheduled quiz missing scheduling dates.")
        start = as_utc(scheduled_quiz.start_date_time)
        end = as_utc(scheduled_quiz.end_date_time)
        if start >= end:
            logger.warning("Scheduled quiz has an empty window", scheduled_quiz_id=sq_key)
            raise NotFoundError("Scheduled quiz has a malformed window.")

        now = as_utc(self.clock())
        if exclude_old and is_old_quiz(end, now):
            return ScheduledQuizStatusResult(scheduled_quiz_id=sq_key, is_old=True)

        if now < start:
            return ScheduledQuizStatusResult(scheduled_quiz_id=sq_key, status=ScheduledQuizStatus.NOT_AVAILABLE)

        answered, play_start = await self._read_progress(user_id, scheduled_quiz.id)

        survey_questions = None
        play_started_at = None
        if play_start is not None:
            play_started_at = as_utc(play_start.server_timestamp)
            available = [a for a in possible if a not in answered]
            survey = await self._survey_status(user_id, scheduled_quiz, answered, available)
            survey_questions = survey.questions

        return decide_status(
            scheduled_quiz_id=sq_key,
            start=start,
            end=end,
            play_duration=scheduled_quiz.play_duration,
            possible=possible,
            answered=answered,
            play_started_at=play_started_at,
            survey_questions=survey_questions,
            now=now,
        )

    async def _evaluate_bounded(self, scheduled_quiz_id: uuid.UUID, user_id: uuid.UUID) -> ScheduledQuizStatusResult:
        return await asyncio.wait_for(
            self.evaluate(scheduled_quiz_id, user_id, exclude_old=True),
            timeout=settings.STATUS_EVALUATION_TIMEOUT_SECONDS,
        )

    async def _list_scheduled_quiz_ids(self, course_id: uuid.UUID) -> List[uuid.UUID]:
        async with self.session_factory() as db:
            scheduled_quizzes = await ScheduleService(db).get_course_scheduled_quizzes(course_id)
            return [sq.id for sq in scheduled_quizzes]

    async def evaluate_all(
        self,
        course_ids: Iterable[uuid.UUID],
        user_id: uuid.UUID,
        batch_size: Optional[int] = None,
    ) -> Dict[str, Dict[str, ScheduledQuizStatusResult]]:
        """Status of every scheduled quiz in the given courses.

        Quizzes are evaluated in sequential batches, concurrently within a batch.
        A failing evaluation is logged and left out; it never fails the report.
        """
        batch_size = min(batch_size or settings.STATUS_BATCH_SIZE, max_concurrent_evaluations())
        course_statuses: Dict[str, Dict[str, ScheduledQuizStatusResult]] = {}

        for course_id in course_ids:
            course_key = str(course_id)
            statuses: Dict[str, ScheduledQuizStatusResult] = {}
            try:
                scheduled_quiz_ids = await self._list_scheduled_quiz_ids(course_id)
            except Exception as e:
                logger.error("Error listing scheduled quizzes for course", course_id=course_key, error=str(e))
                course_statuses[course_key] = statuses
                continue

            for i in range(0, len(scheduled_quiz_ids), batch_size):
                batch = scheduled_quiz_ids[i:i + batch_size]
                results = await asyncio.gather(
                    *(self._evaluate_bounded(sq_id, user_id) for sq_id in batch),
                    return_exceptions=True,
                )
                for sq_id, result in zip(batch, results):
                    if isinstance(result, BaseException):
                        logger.error(
                            "Failed to check scheduled quiz status",
                            course_id=course_key,
                            scheduled_quiz_id=str(sq_id),
                            error=repr(result),
                        )
                        continue
                    if result.is_old:
                        continue
                    statuses[result.scheduled_quiz_id] = result

            course_statuses[course_key] = statuses

        logger.debug("Scheduled quiz statuses evaluated", user_id=str(user_id), courses=len(course_statuses))
        return course_statuses
