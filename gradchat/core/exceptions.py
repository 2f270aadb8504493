from typing import Optional


class GradChatError(Exception):
    """Base class for errors raised inside the chat service."""


class ConfigurationError(GradChatError):
    """A required credential or authenticated user is missing."""


class RemoteQueryError(GradChatError):
    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class PersistenceError(GradChatError):
    pass


class NotFoundError(PersistenceError):
    pass
