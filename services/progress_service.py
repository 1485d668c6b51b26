import uuid
from typing import Optional, Set
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from models.answer import ActivityUserAnswer
from models.play_start import ScheduledQuizUserStart

class ProgressService:
    """What a user has done so far in a scheduled quiz.

    The two reads are independent; callers that want them concurrently must give
    each one its own session.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_answered_activity_ids(self, user_id: uuid.UUID, scheduled_quiz_id: uuid.UUID) -> Set[str]:
        # Only the activity column is needed
        result = await self.db.execute(
            select(ActivityUserAnswer.activity_id).filter(
                ActivityUserAnswer.scheduled_quiz_id == scheduled_quiz_id,
                ActivityUserAnswer.user_id == user_id,
            )
        )
        return {str(a) for a in result.scalars().all()}

    async def get_play_start(self, user_id: uuid.UUID, scheduled_quiz_id: uuid.UUID) -> Optional[ScheduledQuizUserStart]:
        result = await self.db.execute(
            select(ScheduledQuizUserStart).filter(
                ScheduledQuizUserStart.scheduled_quiz_id == scheduled_quiz_id,
                ScheduledQuizUserStart.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def has_answered_any(self, user_id: uuid.UUID, scheduled_quiz_ids) -> bool:
        scheduled_quiz_ids = list(scheduled_quiz_ids)
        if not scheduled_quiz_ids:
            return False
        result = await self.db.execute(
            select(ActivityUserAnswer.id).filter(
                ActivityUserAnswer.user_id == user_id,
                ActivityUserAnswer.scheduled_quiz_id.in_(scheduled_quiz_ids),
            ).limit(1)
        )
        return result.first() is not None
