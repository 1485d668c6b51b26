import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Uuid, UniqueConstraint, func
from models.base import Base, TimestampMixin

class ScheduledQuizUserStart(Base, TimestampMixin):
    """Marks the moment a user started a scheduled quiz. At most one per (scheduled quiz, user)."""
    __tablename__ = "scheduled_quiz_user_starts"
    __table_args__ = (
        UniqueConstraint("scheduled_quiz_id", "user_id", name="uq_scheduled_quiz_user_starts_quiz_user"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    scheduled_quiz_id = Column(Uuid, ForeignKey("scheduled_quizzes.id"), nullable=False)
    user_id = Column(Uuid, index=True, nullable=False)

    # Submitted by the client; informational only
    timestamp = Column(DateTime(timezone=True), nullable=False)
    # Authoritative start used for remaining play time
    server_timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
