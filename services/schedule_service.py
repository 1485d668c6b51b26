import uuid
from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from models.course import Course, CourseSession, CourseRegistration
from models.quiz import Quiz
from models.scheduled_quiz import ScheduledQuiz
from core.exceptions import NotFoundError
from core.logger import logger

class ScheduleService:
    """Read-only lookups over courses, sessions and scheduled quizzes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_scheduled_quiz(self, scheduled_quiz_id: uuid.UUID) -> Optional[ScheduledQuiz]:
        result = await self.db.execute(select(ScheduledQuiz).filter(ScheduledQuiz.id == scheduled_quiz_id))
        return result.scalar_one_or_none()

    async def resolve(self, scheduled_quiz_id: uuid.UUID) -> ScheduledQuiz:
        scheduled_quiz = await self.find_scheduled_quiz(scheduled_quiz_id)
        if not scheduled_quiz:
            logger.warning("Scheduled quiz not found", scheduled_quiz_id=str(scheduled_quiz_id))
            raise NotFoundError("Scheduled quiz does not exist.")
        return scheduled_quiz

    async def get_quiz(self, quiz_id: uuid.UUID) -> Optional[Quiz]:
        result = await self.db.execute(select(Quiz).filter(Quiz.id == quiz_id))
        return result.scalar_one_or_none()

    async def activities_of(self, quiz_id: uuid.UUID) -> List[str]:
        """Ordered activity ids of a quiz."""
        result = await self.db.execute(select(Quiz.activity_ids).filter(Quiz.id == quiz_id))
        row = result.one_or_none()
        if row is None:
            raise NotFoundError("Quiz does not exist.")
        return [str(a) for a in (row.activity_ids or [])]

    async def get_course(self, course_id: uuid.UUID) -> Optional[Course]:
        result = await self.db.execute(select(Course).filter(Course.id == course_id))
        return result.scalar_one_or_none()

    async def find_course_and_session(self, scheduled_quiz: ScheduledQuiz) -> Tuple[Optional[Course], Optional[CourseSession]]:
        result = await self.db.execute(
            select(Course, CourseSession)
            .join(CourseSession, CourseSession.course_id == Course.id)
            .filter(Course.id == scheduled_quiz.course_id, CourseSession.id == scheduled_quiz.session_id)
        )
        row = result.one_or_none()
        if row is None:
            return None, None
        return row[0], row[1]

    async def get_session_scheduled_quizzes(self, session_id: uuid.UUID) -> List[ScheduledQuiz]:
        result = await self.db.execute(
            select(ScheduledQuiz)
            .filter(ScheduledQuiz.session_id == session_id)
            .order_by(ScheduledQuiz.start_date_time.asc())
        )
        return list(result.scalars().all())

    async def get_course_scheduled_quizzes(self, course_id: uuid.UUID) -> List[ScheduledQuiz]:
        result = await self.db.execute(
            select(ScheduledQuiz)
            .filter(ScheduledQuiz.course_id == course_id)
            .order_by(ScheduledQuiz.start_date_time.asc())
        )
        return list(result.scalars().all())

    async def get_user_registered_courses(self, user_id: uuid.UUID) -> List[Course]:
        """Courses with an active registration for the user."""
        result = await self.db.execute(
            select(Course)
            .join(CourseRegistration, CourseRegistration.course_id == Course.id)
            .filter(CourseRegistration.user_id == user_id, CourseRegistration.is_active == True)
        )
        return list(result.scalars().all())
