from typing import List, Optional

from pydantic import BaseModel, Field

from gradchat.model.chat.conversation_response import ConversationRecord
from gradchat.model.chat.message import ChatMessage
from gradchat.model.notice import Notice


class ChatResponse(BaseModel):
    state: str = Field(..., description="uninitialized | ready | awaiting_response")
    conversation_id: Optional[str] = None
    messages: List[ChatMessage]
    notices: List[Notice] = []


class ConversationListResponse(BaseModel):
    conversations: List[ConversationRecord]
