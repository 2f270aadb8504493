from pydantic import BaseModel, Field


class QuestionRequest(BaseModel):
    text: str = Field(..., description="Question typed by the user")
