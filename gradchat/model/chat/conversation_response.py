from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict


class ConversationRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class MessageRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    conversation_id: str
    user_id: str
    content: str
    is_user_message: bool
    model_used: Optional[str] = None
    retrieved_docs: Optional[List[Any]] = None
    reply_to_id: Optional[str] = None
    created_at: datetime
