import uuid

from sqlalchemy import Column, String, JSON, Boolean, Integer, Uuid
from models.base import Base, TimestampMixin

class Quiz(Base, TimestampMixin):
    __tablename__ = "quizzes"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    # Ordered list of activity ids (strings)
    activity_ids = Column(JSON, nullable=False, default=list)
    version = Column(Integer, default=1, nullable=False)

    use_custom_survey_questions = Column(Boolean, default=False, nullable=False)
    exclude_default_survey_questions = Column(Boolean, default=False, nullable=False)
    survey_questions = Column(JSON, nullable=True)
