from sqlalchemy import Column, DateTime, String

from gradchat.db.session import Base
from gradchat.db.types import new_id, utcnow


class Conversation(Base):
    __tablename__ = "chat_conversations"

    id = Column(String(36), primary_key=True, default=new_id)
    # Owner as resolved by the auth provider
    user_id = Column(String, index=True, nullable=False)
    # First user message, cut to 50 chars
    title = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    # Bumped on every message insert; never moves backwards
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
