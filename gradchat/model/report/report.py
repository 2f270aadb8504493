from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

ReportStatus = Literal["pending", "reviewed", "resolved"]


class ReportCreate(BaseModel):
    question: str
    comment: Optional[str] = None


class ReportRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    question: str
    comment: Optional[str] = None
    status: ReportStatus = "pending"
    created_at: datetime
