import uuid

from sqlalchemy import Column, String, Integer, Float, Boolean, JSON, DateTime, Uuid, UniqueConstraint, Index, text, func
from models.base import Base, TimestampMixin

class ActivityUserAnswer(Base, TimestampMixin):
    __tablename__ = "activity_user_answers"
    __table_args__ = (
        # A resubmitted answer carries the same client timestamp
        UniqueConstraint("user_id", "activity_id", "timestamp", name="uq_activity_user_answers_user_activity_ts"),
        # One answer per activity within a scheduled quiz
        Index(
            "uq_activity_user_answers_sq_activity_user",
            "scheduled_quiz_id", "activity_id", "user_id",
            unique=True,
            postgresql_where=text("scheduled_quiz_id IS NOT NULL"),
            sqlite_where=text("scheduled_quiz_id IS NOT NULL"),
        ),
        Index("idx_activity_user_answers_sq_user", "scheduled_quiz_id", "user_id"),
        Index("idx_activity_user_answers_context_user", "play_context_id", "user_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, index=True, nullable=False)
    activity_id = Column(String(64), nullable=False)
    activity_version = Column(Integer, default=1, nullable=False)

    # No foreign keys: a failed insert must only ever mean a duplicate
    scheduled_quiz_id = Column(Uuid, nullable=True)
    play_context_id = Column(String(64), nullable=True)
    course_context_id = Column(Uuid, nullable=True)

    activity_answer_type = Column(String(50), nullable=False)
    activity_play_time = Column(Integer, nullable=False)
    is_correct = Column(Boolean, nullable=False)
    difficulty = Column(Float, default=0.5, nullable=False)

    # Type specific fields (choices, recall answers, code solutions...)
    payload = Column(JSON, nullable=True)

    timestamp = Column(DateTime(timezone=True), nullable=False)
    server_timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
