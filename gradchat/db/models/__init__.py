from .conversation import Conversation
from .feedback import Feedback
from .message import Message
from .note import Note
from .reported_question import ReportedQuestion

__all__ = ["Conversation", "Feedback", "Message", "Note", "ReportedQuestion"]
