import uuid
from enum import IntEnum
from typing import List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from models.answer import ActivityUserAnswer
from models.play_context import PlayContext, PLAY_TYPES
from services.schedule_service import ScheduleService
from core.exceptions import InternalError, NotFoundError
from core.logger import logger


class TrialQuizPlayStatus(IntEnum):
    PLAYED = 200
    NOT_PLAYED = 209
    NO_TRIAL_QUIZ = 210


class PlayContextLogStatus(IntEnum):
    LOGGED = 200
    UPDATED = 209


class PlayContextIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    context_id: str = Field(..., alias="contextId", min_length=1, max_length=64)
    play_type: str = Field(..., alias="playType")
    descriptor: Optional[str] = Field(None, max_length=255)
    activities: List[str] = Field(default_factory=list)
    additional_activities: List[str] = Field(default_factory=list, alias="additionalActivities")
    course: Optional[uuid.UUID] = None
    scheduled_quiz: Optional[uuid.UUID] = Field(None, alias="scheduledQuiz")
    log_answers: bool = Field(True, alias="logAnswers")

    @field_validator("play_type")
    @classmethod
    def check_play_type(cls, v: str) -> str:
        if v not in PLAY_TYPES:
            raise ValueError(f"playType must be one of {', '.join(PLAY_TYPES)}")
        return v


class TrialService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def log_play_context(self, user_id: uuid.UUID, context: PlayContextIn) -> PlayContextLogStatus:
        """Insert the play context, or update it if its context id is already known."""
        values = dict(
            user_id=user_id,
            play_type=context.play_type,
            descriptor=context.descriptor,
            activity_ids=list(context.activities),
            additional_activity_ids=list(context.additional_activities),
            course_id=context.course,
            scheduled_quiz_id=context.scheduled_quiz,
            log_answers=context.log_answers,
        )
        try:
            self.db.add(PlayContext(context_id=context.context_id, **values))
            try:
                await self.db.commit()
                logger.info("Play context logged", user_id=str(user_id), context_id=context.context_id)
                return PlayContextLogStatus.LOGGED
            except IntegrityError:
                await self.db.rollback()

            result = await self.db.execute(
                update(PlayContext)
                .where(PlayContext.context_id == context.context_id, PlayContext.user_id == user_id)
                .values(**values)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to log play context", user_id=str(user_id), error=str(e))
            raise InternalError("Play context could not be saved/updated.") from e

        if result.rowcount == 0:
            # The context id belongs to another user
            logger.warning("Play context owned by another user", user_id=str(user_id), context_id=context.context_id)
            raise InternalError("Play context could not be saved/updated.")
        logger.info("Play context updated", user_id=str(user_id), context_id=context.context_id)
        return PlayContextLogStatus.UPDATED

    async def check_trial_quiz_status(self, user_id: uuid.UUID, course_id: uuid.UUID) -> Tuple[TrialQuizPlayStatus, List[str]]:
        """Whether the user has answered every activity offered across their trial quiz play contexts.

        Returns the status and, when not fully played, the activities still unanswered.
        """
        course = await ScheduleService(self.db).get_course(course_id)
        if not course:
            logger.error("Failed to find course to check its trial quiz play status", course_id=str(course_id))
            raise NotFoundError("Course does not exist.")
        if not course.trial_quiz_id:
            return TrialQuizPlayStatus.NO_TRIAL_QUIZ, []

        result = await self.db.execute(
            select(PlayContext.context_id, PlayContext.activity_ids).filter(
                PlayContext.user_id == user_id,
                PlayContext.course_id == course_id,
                PlayContext.play_type == "trialQuiz",
            )
        )
        contexts = result.all()
        if not contexts:
            return TrialQuizPlayStatus.NOT_PLAYED, []

        context_ids = [c.context_id for c in contexts]
        activity_ids: List[str] = []
        for c in contexts:
            for a in c.activity_ids or []:
                if str(a) not in activity_ids:
                    activity_ids.append(str(a))
        if not activity_ids:
            return TrialQuizPlayStatus.NOT_PLAYED, []

        answered_result = await self.db.execute(
            select(ActivityUserAnswer.activity_id).distinct().filter(
                ActivityUserAnswer.user_id == user_id,
                ActivityUserAnswer.play_context_id.in_(context_ids),
            )
        )
        answered = {str(a) for a in answered_result.scalars().all()}
        remaining = [a for a in activity_ids if a not in answered]
        if not remaining:
            return TrialQuizPlayStatus.PLAYED, []
        return TrialQuizPlayStatus.NOT_PLAYED, remaining
