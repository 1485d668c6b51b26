import uuid
from datetime import datetime
from enum import IntEnum
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from models.answer import ActivityUserAnswer
from services.schedule_service import ScheduleService
from core.exceptions import InternalError, InvalidArgumentError, NotFoundError
from core.logger import logger
from utils.dates import as_utc
from utils.validation import parse_id

# Fields the server owns; ignored if the client sends them
_SERVER_FIELDS = {"user", "_id", "id", "serverTimestamp", "createdAt", "updatedAt"}


class ActivityUserAnswerIn(BaseModel):
    """An answer as submitted by the client. Type specific fields are kept as payload."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    activity: str = Field(..., min_length=1, max_length=64)
    activity_version: int = Field(1, alias="activityVersion", ge=1)
    activity_answer_type: str = Field(..., alias="activityAnswerType", min_length=1, max_length=50)
    activity_play_time: int = Field(..., alias="activityPlayTime")
    is_correct: bool = Field(..., alias="isCorrect")
    difficulty: float = 0.5
    timestamp: datetime
    scheduled_quiz: Optional[str] = Field(None, alias="scheduledQuiz")
    play_context_id: Optional[str] = Field(None, alias="playContextId", max_length=64)
    course_context: Optional[uuid.UUID] = Field(None, alias="courseContext")

    def payload(self) -> Dict:
        return {k: v for k, v in (self.model_extra or {}).items() if k not in _SERVER_FIELDS}


class AnswerLogStatus(IntEnum):
    LOGGED = 200
    ALREADY_LOGGED = 209


class BatchLogResult(BaseModel):
    inserted_count: int = 0
    already_logged_timestamps: List[datetime] = Field(default_factory=list)
    skipped_count: int = 0


class AnswerService:
    """Idempotent answer logging.

    No read-before-write: the unique indexes on activity_user_answers detect a
    resubmitted answer at insert time.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    def _to_row(self, user_id: uuid.UUID, answer: ActivityUserAnswerIn, scheduled_quiz_id: Optional[uuid.UUID]) -> ActivityUserAnswer:
        return ActivityUserAnswer(
            user_id=user_id,
            activity_id=answer.activity,
            activity_version=answer.activity_version,
            scheduled_quiz_id=scheduled_quiz_id,
            play_context_id=answer.play_context_id,
            course_context_id=answer.course_context,
            activity_answer_type=answer.activity_answer_type,
            activity_play_time=answer.activity_play_time,
            is_correct=answer.is_correct,
            difficulty=answer.difficulty,
            payload=answer.payload() or None,
            timestamp=as_utc(answer.timestamp),
        )

    async def record(self, user_id: uuid.UUID, answer: ActivityUserAnswerIn) -> Tuple[AnswerLogStatus, Optional[ActivityUserAnswer]]:
        scheduled_quiz_id = None
        if answer.scheduled_quiz:
            scheduled_quiz_id = parse_id(answer.scheduled_quiz, "scheduledQuiz")
            # Raises NotFoundError
            await ScheduleService(self.db).resolve(scheduled_quiz_id)

        row = self._to_row(user_id, answer, scheduled_quiz_id)
        self.db.add(row)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.info("Activity answer already logged", user_id=str(user_id), activity_id=answer.activity)
            return AnswerLogStatus.ALREADY_LOGGED, None
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.warning("Failed to save activity answer", user_id=str(user_id), error=str(e))
            raise InternalError("Failed to save user activity answer: an error occurred while saving.") from e

        # Detached so a later rollback on this session cannot expire it
        self.db.expunge(row)
        logger.info("Activity answer logged", user_id=str(user_id), activity_id=answer.activity)
        return AnswerLogStatus.LOGGED, row

    async def record_many(self, user_id: uuid.UUID, answers: List[ActivityUserAnswerIn]) -> BatchLogResult:
        """Log several answers in one transaction.

        Duplicates are reported and skipped; any other failure rolls back the whole batch.
        Answers pointing at an unknown scheduled quiz are dropped before inserting.
        """
        result = BatchLogResult()
        schedule = ScheduleService(self.db)
        known: Dict[uuid.UUID, bool] = {}

        try:
            async with self.db.begin():
                rows = []
                for answer in answers:
                    scheduled_quiz_id = None
                    if answer.scheduled_quiz:
                        try:
                            scheduled_quiz_id = parse_id(answer.scheduled_quiz, "scheduledQuiz")
                        except InvalidArgumentError:
                            scheduled_quiz_id = None
                        if scheduled_quiz_id is not None and scheduled_quiz_id not in known:
                            known[scheduled_quiz_id] = await schedule.find_scheduled_quiz(scheduled_quiz_id) is not None
                        if scheduled_quiz_id is None or not known[scheduled_quiz_id]:
                            logger.warning("Skipping answer with unknown scheduled quiz", user_id=str(user_id), scheduled_quiz=answer.scheduled_quiz)
                            result.skipped_count += 1
                            continue
                    rows.append(self._to_row(user_id, answer, scheduled_quiz_id))

                if not rows:
                    raise NotFoundError("Nothing to log.")

                for row in rows:
                    try:
                        async with self.db.begin_nested():
                            self.db.add(row)
                    except IntegrityError:
                        # Savepoint rolled back; siblings carry on
                        result.already_logged_timestamps.append(row.timestamp)
                        continue
                    result.inserted_count += 1
        except SQLAlchemyError as e:
            logger.error("Failed to log activity answers", user_id=str(user_id), error=str(e))
            raise InternalError("Failed to log activity answers.") from e

        logger.info(
            "Activity answers logged",
            user_id=str(user_id),
            inserted=result.inserted_count,
            already_logged=len(result.already_logged_timestamps),
            skipped=result.skipped_count,
        )
        return result
