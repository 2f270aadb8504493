from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict


class ChatMessage(BaseModel):
    """One transcript entry. Entries are never edited after creation."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    is_user: bool
    timestamp: datetime
    retrieved_docs: Optional[List[Any]] = None
    model_used: Optional[str] = None
    # For bot messages: the user message that produced it
    reply_to_id: Optional[str] = None
