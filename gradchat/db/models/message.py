from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text

from gradchat.db.session import Base
from gradchat.db.types import JSONDocument, new_id, utcnow


class Message(Base):
    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=new_id)
    # Parent conversation row
    conversation_id = Column(String(36), ForeignKey("chat_conversations.id"), index=True, nullable=False)
    user_id = Column(String, index=True, nullable=False)
    content = Column(Text, nullable=False)
    is_user_message = Column(Boolean, default=False, nullable=False)
    # Model name reported by the query service (bot messages only)
    model_used = Column(String, nullable=True)
    # Retrieved-document references, kept opaque
    retrieved_docs = Column(JSONDocument, nullable=True)
    # User message that triggered this bot message
    reply_to_id = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True, nullable=False)
