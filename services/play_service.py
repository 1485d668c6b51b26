import uuid
from datetime import datetime
from enum import IntEnum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker
from models.play_start import ScheduledQuizUserStart
from services.status_service import StatusService, ScheduledQuizStatus, ScheduledQuizStatusResult
from core.exceptions import InternalError
from core.logger import logger


class PlayScheduledQuizStatus(IntEnum):
    CAN_PLAY = 200
    ALREADY_PLAYED_ALL_ACTIVITIES = 209
    NOT_YET_AVAILABLE = 210
    MISSING_ARGUMENTS = 400
    INVALID_SCHEDULED_QUIZ_ID = 452
    PLAY_PERIOD_OVER = 455
    INTERNAL_ERROR = 500


class PlayResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    code: PlayScheduledQuizStatus = Field(..., exclude=True)
    status: Optional[ScheduledQuizStatus] = None
    activities: Optional[List[str]] = None
    available_play_time: Optional[int] = Field(None, alias="availablePlayTime")
    available_survey_questions: Optional[List[dict]] = Field(None, alias="availableSurveyQuestions")
    message: Optional[str] = None


class PlayService:
    def __init__(self, session_factory: async_sessionmaker, status_service: Optional[StatusService] = None):
        self.session_factory = session_factory
        self.status_service = status_service or StatusService(session_factory)

    async def record_play_start(self, scheduled_quiz_id: uuid.UUID, user_id: uuid.UUID, client_timestamp: datetime) -> bool:
        """Insert the user's start record unless one exists. Returns True if this call created it."""
        async with self.session_factory() as db:
            try:
                async with db.begin():
                    # Another request may have written the record since the status check
                    result = await db.execute(
                        select(ScheduledQuizUserStart.id).filter(
                            ScheduledQuizUserStart.scheduled_quiz_id == scheduled_quiz_id,
                            ScheduledQuizUserStart.user_id == user_id,
                        )
                    )
                    if result.first() is not None:
                        logger.info("Play start already recorded", scheduled_quiz_id=str(scheduled_quiz_id), user_id=str(user_id))
                        return False
                    db.add(ScheduledQuizUserStart(
                        scheduled_quiz_id=scheduled_quiz_id,
                        user_id=user_id,
                        timestamp=client_timestamp,
                    ))
            except IntegrityError:
                # A concurrent transaction inserted first; the unique constraint kept it single
                logger.info("Concurrent play start resolved", scheduled_quiz_id=str(scheduled_quiz_id), user_id=str(user_id))
                return False
            except SQLAlchemyError as e:
                logger.error(
                    "Transaction failed while creating play start",
                    scheduled_quiz_id=str(scheduled_quiz_id),
                    user_id=str(user_id),
                    error=str(e),
                )
                raise InternalError("Can't play scheduled quiz: internal error occurred.") from e

        logger.info("Play start recorded", scheduled_quiz_id=str(scheduled_quiz_id), user_id=str(user_id))
        return True

    async def start_or_continue(self, scheduled_quiz_id: uuid.UUID, user_id: uuid.UUID, client_timestamp: datetime) -> PlayResult:
        status: ScheduledQuizStatusResult = await self.status_service.evaluate(scheduled_quiz_id, user_id, exclude_old=False)

        if status.status == ScheduledQuizStatus.CAN_START:
            await self.record_play_start(scheduled_quiz_id, user_id, client_timestamp)
            return PlayResult(
                code=PlayScheduledQuizStatus.CAN_PLAY,
                status=status.status,
                activities=status.available_activities,
                available_play_time=status.available_play_time,
            )

        if status.status == ScheduledQuizStatus.CAN_CONTINUE:
            return PlayResult(
                code=PlayScheduledQuizStatus.CAN_PLAY,
                status=status.status,
                activities=status.available_activities,
                available_play_time=status.available_play_time,
                available_survey_questions=status.available_survey_questions,
            )

        if status.status == ScheduledQuizStatus.HAS_FINISHED:
            return PlayResult(
                code=PlayScheduledQuizStatus.ALREADY_PLAYED_ALL_ACTIVITIES,
                status=status.status,
                available_survey_questions=status.available_survey_questions,
                message="Can't play scheduled quiz: the user has already played all the contained activities.",
            )

        if status.status == ScheduledQuizStatus.IS_OVER:
            return PlayResult(
                code=PlayScheduledQuizStatus.PLAY_PERIOD_OVER,
                status=status.status,
                available_survey_questions=status.available_survey_questions,
                message="Can't play scheduled quiz: the play period is over.",
            )

        if status.status == ScheduledQuizStatus.NOT_AVAILABLE:
            return PlayResult(
                code=PlayScheduledQuizStatus.NOT_YET_AVAILABLE,
                status=status.status,
                message="Can't play scheduled quiz: the quiz period hasn't started yet.",
            )

        logger.error("Unexpected scheduled quiz status", scheduled_quiz_id=str(scheduled_quiz_id), status=status.status)
        raise InternalError("Can't play scheduled quiz: an internal error occurred.")
