import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("WAKE_UP_ON_STARTUP", "0")
os.environ.setdefault("FEEDBACK_FORWARD_ENABLED", "0")

import httpx
import pytest
from sqlalchemy.orm import sessionmaker

from gradchat.client.db.persistence import PersistenceClient
from gradchat.client.rag.query_api import QueryApiClient
from gradchat.db import models  # noqa: F401
from gradchat.db.session import Base, build_engine
from gradchat.service.chat.chat import ConversationStore

QUERY_BASE_URL = "http://query.test"


class QueryRecorder:
    """Scripted stand-in for the remote query service, driven through httpx.MockTransport."""

    def __init__(self):
        self.requests = []
        self.reply = {"response": "Deadlines are...", "model_used": "gemini-2.0-flash-lite", "retrieved_docs": []}
        self.status_code = 200
        self.error = None
        self.hold = None

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.hold is not None:
            await self.hold.wait()
        if self.error is not None:
            raise self.error
        if request.url.path == "/health":
            return httpx.Response(200, json={"status": "ok"})
        if request.url.path == "/feedback":
            return httpx.Response(200, json={})
        return httpx.Response(self.status_code, json=self.reply)

    def query_requests(self):
        return [r for r in self.requests if r.url.path == "/query"]


#scope : function < class < module < package < session
@pytest.fixture(scope="function")
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'gradchat.db'}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    engine.dispose()


@pytest.fixture(scope="function")
def persistence(session_factory):
    return PersistenceClient(session_factory=session_factory, timeout=5)


@pytest.fixture(scope="function")
def query_service():
    return QueryRecorder()


@pytest.fixture(scope="function")
def query_client(query_service):
    return QueryApiClient(base_url=QUERY_BASE_URL, transport=httpx.MockTransport(query_service))


@pytest.fixture(scope="function")
def store(persistence, query_client):
    return ConversationStore(persistence, query_client, api_key="test-key")
