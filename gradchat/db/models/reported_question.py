from sqlalchemy import Column, DateTime, String, Text

from gradchat.db.session import Base
from gradchat.db.types import new_id, utcnow


class ReportedQuestion(Base):
    __tablename__ = "reported_questions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String, index=True, nullable=False)
    question = Column(Text, nullable=False)
    comment = Column(Text, nullable=True)
    # pending | reviewed | resolved; only the review process moves it
    status = Column(String, default="pending", nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
