import copy
import uuid
from datetime import datetime, timedelta
from enum import IntEnum
from typing import Callable, Iterable, List, Optional
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from models.scheduled_quiz import ScheduledQuiz
from models.survey import SurveyAnswer
from services.schedule_service import ScheduleService
from services.progress_service import ProgressService
from core.config import settings
from core.exceptions import InternalError
from core.logger import logger
from utils.dates import as_utc, utcnow

def _numeric(question: str) -> dict:
    return {"question": question, "questionType": "numericRange", "min": 1, "max": 5}

# Default post-quiz survey questions keyed by identifier
SURVEY_QUESTIONS = {
    "difficulty": _numeric("How difficult did you find the quiz?"),
    "educational": _numeric("How educational were the questions?"),
    "preparation": _numeric("How much did you prepare for this week's lecture?"),
    "motivation": _numeric("How motivated were you to play this quiz?"),
    "feedback": _numeric("How useful was the feedback after answering a question?"),
    "confidence": _numeric(
        "How much did the quiz lower your initial confidence in your understanding of the lecture's topics?"
    ),
    "restudy": _numeric("How much did you restudy your lecture material after your last played quiz?"),
}

ALWAYS_ASKED = ("difficulty", "educational")
PRE_QUIZ = ("preparation",)
POST_QUIZ = ("motivation", "feedback")
FIRST_POST_QUIZ = ("confidence",)
LATER_POST_QUIZ = ("restudy",)


class SurveyStatus(BaseModel):
    existing_answer: bool = False
    questions: Optional[List[dict]] = None


class SurveyLogStatus(IntEnum):
    LOGGED = 200
    ALREADY_LOGGED = 209


def survey_period_over(start: datetime, end: datetime, now: datetime) -> bool:
    """True once the window has closed and the grace period after it has elapsed."""
    is_within_window = start <= now < end
    return not is_within_window and now - end > timedelta(days=settings.SURVEY_GRACE_PERIOD_DAYS)


def catalog_questions(keys: Iterable[str]) -> List[dict]:
    return [copy.deepcopy(SURVEY_QUESTIONS[k]) for k in keys]


class SurveyService:
    """Decides which post-quiz survey questions a user is still offered.

    Any object exposing a compatible ``status_for`` coroutine can replace it in
    ``StatusService``.
    """

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    async def get_survey_answer(self, user_id: uuid.UUID, scheduled_quiz_id: uuid.UUID) -> Optional[SurveyAnswer]:
        result = await self.db.execute(
            select(SurveyAnswer).filter(
                SurveyAnswer.scheduled_quiz_id == scheduled_quiz_id,
                SurveyAnswer.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def status_for(
        self,
        user_id: uuid.UUID,
        scheduled_quiz: ScheduledQuiz,
        answered: Optional[set] = None,
        available: Optional[list] = None,
    ) -> SurveyStatus:
        # answered/available are hints for alternative resolvers; this one derives what it needs
        if await self.get_survey_answer(user_id, scheduled_quiz.id):
            return SurveyStatus(existing_answer=True, questions=None)

        now = as_utc(self.clock())
        start = as_utc(scheduled_quiz.start_date_time)
        end = as_utc(scheduled_quiz.end_date_time)
        if survey_period_over(start, end, now):
            return SurveyStatus()

        schedule = ScheduleService(self.db)
        course, course_session = await schedule.find_course_and_session(scheduled_quiz)
        if not course or not course_session:
            raise InternalError("Course not found.")
        quiz = await schedule.get_quiz(scheduled_quiz.quiz_id)
        if not quiz:
            raise InternalError("Quiz not found.")

        questions: List[dict] = []
        if quiz.use_custom_survey_questions:
            questions.extend(copy.deepcopy(q) for q in (quiz.survey_questions or []))
            if quiz.exclude_default_survey_questions:
                return SurveyStatus(questions=questions or None)

        keys = list(ALWAYS_ASKED)
        is_pre_quiz = start < as_utc(course_session.start_date_time)
        if is_pre_quiz:
            keys.extend(PRE_QUIZ)
        else:
            keys.extend(POST_QUIZ)
            siblings = await schedule.get_session_scheduled_quizzes(course_session.id)
            preceding = [
                sq.id for sq in siblings
                if sq.id != scheduled_quiz.id and as_utc(sq.start_date_time) < start
            ]
            if not preceding:
                keys.extend(FIRST_POST_QUIZ)
            elif await ProgressService(self.db).has_answered_any(user_id, preceding):
                keys.extend(LATER_POST_QUIZ)

        questions.extend(catalog_questions(keys))
        return SurveyStatus(questions=questions or None)

    async def log_survey_answer(self, user_id: uuid.UUID, scheduled_quiz_id: uuid.UUID, answers: List[dict]) -> SurveyLogStatus:
        # Raises NotFoundError for unknown scheduled quizzes
        await ScheduleService(self.db).resolve(scheduled_quiz_id)

        self.db.add(SurveyAnswer(scheduled_quiz_id=scheduled_quiz_id, user_id=user_id, answers=answers))
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info("Survey answer already logged", user_id=str(user_id), scheduled_quiz_id=str(scheduled_quiz_id))
            return SurveyLogStatus.ALREADY_LOGGED
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to save survey answer", user_id=str(user_id), error=str(e))
            raise InternalError("Failed to store survey answer.") from e

        logger.info("Survey answer logged", user_id=str(user_id), scheduled_quiz_id=str(scheduled_quiz_id))
        return SurveyLogStatus.LOGGED
