"""
Pytest configuration and fixtures for the play engine tests.
"""
import sys
import os
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENV", "test")

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from models.base import Base
from models import answer, course, play_context, play_start, quiz, scheduled_quiz, survey  # noqa: F401
from models.course import Course, CourseSession, CourseRegistration
from models.quiz import Quiz
from models.scheduled_quiz import ScheduledQuiz
from models.play_start import ScheduledQuizUserStart
from models.answer import ActivityUserAnswer

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)

HOUR_US = 3_600_000_000

WINDOW_START = datetime(2024, 1, 1, tzinfo=timezone.utc)
WINDOW_END = datetime(2024, 1, 8, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'play.db'}")

    # Take the write lock at BEGIN so concurrent transactions serialize like row locks would
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def user_id():
    return uuid.uuid4()


class Seeder:
    """Creates courses, sessions, quizzes and scheduled quizzes for a test."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def add(self, *objects):
        async with self.session_factory() as db:
            db.add_all(objects)
            await db.commit()
        return objects[0] if len(objects) == 1 else objects

    async def course(self, trial_activities=None, session_start=None):
        trial_quiz = None
        if trial_activities is not None:
            trial_quiz = await self.add(Quiz(title="Trial", activity_ids=list(trial_activities)))
        course = Course(id=uuid.uuid4(), title="Algorithms", trial_quiz_id=trial_quiz.id if trial_quiz else None)
        course_session = CourseSession(
            id=uuid.uuid4(),
            course_id=course.id,
            title="Week 1",
            start_date_time=session_start or WINDOW_START,
        )
        await self.add(course, course_session)
        return SimpleNamespace(course=course, session=course_session, trial_quiz=trial_quiz)

    async def scheduled_quiz(
        self,
        owner=None,
        start=WINDOW_START,
        end=WINDOW_END,
        play_duration=HOUR_US,
        activities=("a1", "a2", "a3"),
        **quiz_fields,
    ):
        owner = owner or await self.course()
        quiz = await self.add(Quiz(id=uuid.uuid4(), title="Quiz", activity_ids=list(activities), **quiz_fields))
        sq = await self.add(ScheduledQuiz(
            id=uuid.uuid4(),
            course_id=owner.course.id,
            session_id=owner.session.id,
            quiz_id=quiz.id,
            start_date_time=start,
            end_date_time=end,
            play_duration=play_duration,
        ))
        return sq

    async def register(self, course_id, user_id, is_active=True):
        return await self.add(CourseRegistration(course_id=course_id, user_id=user_id, is_active=is_active))

    async def play_start(self, scheduled_quiz_id, user_id, at):
        return await self.add(ScheduledQuizUserStart(
            scheduled_quiz_id=scheduled_quiz_id,
            user_id=user_id,
            timestamp=at,
            server_timestamp=at,
        ))

    async def answers(self, scheduled_quiz_id, user_id, activity_ids, at):
        rows = [
            ActivityUserAnswer(
                user_id=user_id,
                activity_id=a,
                scheduled_quiz_id=scheduled_quiz_id,
                activity_answer_type="choice",
                activity_play_time=1000,
                is_correct=True,
                timestamp=at + timedelta(seconds=i),
            )
            for i, a in enumerate(activity_ids)
        ]
        if rows:
            await self.add(*rows)


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)


def fixed_clock(at: datetime):
    return lambda: at


def answer_doc(activity="a1", scheduled_quiz=None, timestamp="2024-01-03T10:05:00Z", **extra):
    doc = {
        "activity": activity,
        "activityAnswerType": "choice",
        "activityPlayTime": 4200,
        "isCorrect": True,
        "timestamp": timestamp,
    }
    if scheduled_quiz is not None:
        doc["scheduledQuiz"] = str(scheduled_quiz)
    doc.update(extra)
    return doc
