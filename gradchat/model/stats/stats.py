from pydantic import BaseModel


class Stats(BaseModel):
    questions_today: int = 0
    total_questions: int = 0
    reports_submitted: int = 0
    notes_created: int = 0
