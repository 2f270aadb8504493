from sqlalchemy import Column, DateTime, ForeignKey, String, Text

from gradchat.db.session import Base
from gradchat.db.types import JSONDocument, new_id, utcnow


class Feedback(Base):
    __tablename__ = "chat_feedback"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String, index=True, nullable=False)
    message_id = Column(String(36), ForeignKey("chat_messages.id"), nullable=True)
    conversation_id = Column(String(36), ForeignKey("chat_conversations.id"), nullable=True)
    # thumbs_up | thumbs_down
    feedback_type = Column(String, nullable=False)
    user_query = Column(Text, nullable=True)
    bot_response = Column(Text, nullable=True)
    thumbs_up_reason = Column(Text, nullable=True)
    thumbs_down_reason = Column(Text, nullable=True)
    corrected_question = Column(Text, nullable=True)
    correct_answer = Column(Text, nullable=True)
    model_used = Column(String, nullable=True)
    retrieved_docs = Column(JSONDocument, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
