from sqlalchemy import Column, DateTime, String, Text

from gradchat.db.session import Base
from gradchat.db.types import new_id, utcnow


class Note(Base):
    __tablename__ = "notes"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String, index=True, nullable=False)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
