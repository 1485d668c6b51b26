import uuid

from sqlalchemy import Column, String, Float, BigInteger, DateTime, ForeignKey, Uuid, CheckConstraint, Index
from models.base import Base, TimestampMixin

class ScheduledQuiz(Base, TimestampMixin):
    """Time-boxed instance of a quiz inside a course session.

    Kept as its own table keyed by id so a scheduled quiz resolves to its course,
    session, window and duration with a single indexed lookup.
    """
    __tablename__ = "scheduled_quizzes"
    __table_args__ = (
        CheckConstraint("start_date_time < end_date_time", name="ck_scheduled_quizzes_window"),
        Index("idx_scheduled_quizzes_course_end", "course_id", "end_date_time"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id = Column(Uuid, ForeignKey("courses.id"), nullable=False)
    session_id = Column(Uuid, ForeignKey("course_sessions.id"), index=True, nullable=False)
    quiz_id = Column(Uuid, ForeignKey("quizzes.id"), nullable=False)

    start_date_time = Column(DateTime(timezone=True), nullable=False)
    end_date_time = Column(DateTime(timezone=True), nullable=False)
    # Microseconds, the unit the mobile client works in
    play_duration = Column(BigInteger, nullable=False)

    assessment_type = Column(String(50), default="quiz", nullable=False)
    fixed_difficulty = Column(Float, nullable=True)
