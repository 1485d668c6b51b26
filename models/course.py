import uuid

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from models.base import Base, TimestampMixin

class Course(Base, TimestampMixin):
    __tablename__ = "courses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    # Quiz offered to newly registered users before the first session
    trial_quiz_id = Column(Uuid, ForeignKey("quizzes.id"), nullable=True)

    sessions = relationship("CourseSession", back_populates="course", order_by="CourseSession.start_date_time")


class CourseSession(Base, TimestampMixin):
    __tablename__ = "course_sessions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id = Column(Uuid, ForeignKey("courses.id"), index=True, nullable=False)
    title = Column(String(255), nullable=True)
    start_date_time = Column(DateTime(timezone=True), nullable=False)
    end_date_time = Column(DateTime(timezone=True), nullable=True)

    course = relationship("Course", back_populates="sessions")


class CourseRegistration(Base, TimestampMixin):
    __tablename__ = "course_registrations"
    __table_args__ = (
        UniqueConstraint("course_id", "user_id", name="uq_course_registrations_course_user"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id = Column(Uuid, ForeignKey("courses.id"), nullable=False)
    user_id = Column(Uuid, index=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
