from typing import Any, List, Optional

from pydantic import BaseModel


class QueryResult(BaseModel):
    # Always plain text; the client unwraps structured payloads on receipt.
    response: str
    retrieved_docs: Optional[List[Any]] = None
    model_used: Optional[str] = None
