from typing import Any, List, Optional

from pydantic import BaseModel


class QueryRequest(BaseModel):
    query: str
    api_key: str
    k: int = 3
    model: str


class RemoteFeedbackRequest(BaseModel):
    timestamp: str
    query: str
    response: str
    feedback_type: str
    thumbs_down_reason: Optional[str] = None
    thumbs_up_reason: Optional[str] = None
    corrected_question: Optional[str] = None
    correct_answer: Optional[str] = None
    model_used: Optional[str] = None
    retrieved_docs: Optional[List[Any]] = None
    source_message_id: Optional[str] = None
