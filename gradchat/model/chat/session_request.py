from typing import List

from pydantic import BaseModel, Field

from gradchat.model.notice import Notice


class ApiKeyRequest(BaseModel):
    api_key: str = Field(..., min_length=1, description="Query-service API key")


class ApiKeyStatusResponse(BaseModel):
    configured: bool
    notices: List[Notice] = []


class SessionEndResponse(BaseModel):
    ended: bool
