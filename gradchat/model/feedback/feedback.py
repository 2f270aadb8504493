from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from gradchat.model.notice import Notice


class Polarity(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"

    @property
    def feedback_type(self) -> str:
        return "thumbs_up" if self is Polarity.POSITIVE else "thumbs_down"


class FeedbackBeginRequest(BaseModel):
    message_id: str
    polarity: Polarity


class FeedbackSubmitRequest(BaseModel):
    comment: str = Field(..., description="Why the answer was good or bad")
    corrected_question: Optional[str] = None
    correct_answer: Optional[str] = None


class FeedbackCreate(BaseModel):
    user_id: str
    message_id: Optional[str] = None
    conversation_id: Optional[str] = None
    feedback_type: str
    user_query: Optional[str] = None
    bot_response: Optional[str] = None
    thumbs_up_reason: Optional[str] = None
    thumbs_down_reason: Optional[str] = None
    corrected_question: Optional[str] = None
    correct_answer: Optional[str] = None
    model_used: Optional[str] = None
    retrieved_docs: Optional[List[Any]] = None


class FeedbackRecord(FeedbackCreate):
    model_config = ConfigDict(from_attributes=True)

    id: str
    created_at: datetime


class FeedbackStatusResponse(BaseModel):
    open: bool
    polarity: Optional[Polarity] = None
    notices: List[Notice] = []
