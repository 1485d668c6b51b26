import uuid

from sqlalchemy import Column, String, Boolean, JSON, ForeignKey, Uuid, Index
from models.base import Base, TimestampMixin

PLAY_TYPES = ("trialQuiz", "scheduledQuiz", "review", "challengeReview", "test", "unlock")

class PlayContext(Base, TimestampMixin):
    """A client play session (trial quiz, scheduled quiz, review...) grouping answers by context_id."""
    __tablename__ = "play_contexts"
    __table_args__ = (
        Index("idx_play_contexts_user_course_type", "user_id", "course_id", "play_type"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    context_id = Column(String(64), unique=True, nullable=False)
    user_id = Column(Uuid, index=True, nullable=False)
    play_type = Column(String(32), nullable=False)
    descriptor = Column(String(255), nullable=True)

    # Activities part of the context, not necessarily all played
    activity_ids = Column(JSON, nullable=False, default=list)
    additional_activity_ids = Column(JSON, nullable=False, default=list)

    course_id = Column(Uuid, ForeignKey("courses.id"), nullable=True)
    scheduled_quiz_id = Column(Uuid, nullable=True)

    log_answers = Column(Boolean, default=True, nullable=False)
