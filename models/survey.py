import uuid

from sqlalchemy import Column, JSON, DateTime, ForeignKey, Uuid, UniqueConstraint, func
from models.base import Base, TimestampMixin

class SurveyAnswer(Base, TimestampMixin):
    __tablename__ = "survey_answers"
    __table_args__ = (
        UniqueConstraint("scheduled_quiz_id", "user_id", name="uq_survey_answers_quiz_user"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    scheduled_quiz_id = Column(Uuid, ForeignKey("scheduled_quizzes.id"), nullable=False)
    user_id = Column(Uuid, index=True, nullable=False)
    answers = Column(JSON, nullable=False)
    server_timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
