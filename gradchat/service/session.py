import asyncio
import logging
import time
from typing import Callable, Dict, Optional

from redis.exceptions import RedisError

from gradchat.client.db.persistence import PersistenceClient
from gradchat.client.rag.query_api import QueryApiClient
from gradchat.config.config import SESSION_IDLE_SECONDS
from gradchat.service.chat.chat import ConversationStore, StoreState
from gradchat.service.context.credential_context import get_api_key, save_api_key
from gradchat.service.feedback.feedback import FeedbackWorkflow
from gradchat.service.notes.notes import NoteService
from gradchat.service.notice import NoticeBoard
from gradchat.service.report.report import ReportService
from gradchat.service.stats.stats import StatsAggregator

logger = logging.getLogger(__name__)


class ChatSession:
    """Everything one signed-in user is looking at."""

    def __init__(self, user_id: str, persistence: PersistenceClient, query_client: QueryApiClient) -> None:
        self.user_id = user_id
        self.notices = NoticeBoard()
        self.store = ConversationStore(persistence, query_client, notices=self.notices)
        self.feedback = FeedbackWorkflow(self.store, persistence, query_client=query_client)
        self.stats = StatsAggregator(persistence)
        self.notes = NoteService(persistence, self.notices, user_id=user_id)
        self.reports = ReportService(persistence, self.notices, user_id=user_id)

    async def start(self, api_key: str = "") -> None:
        self.store.set_api_key(api_key)
        await self.store.set_user(self.user_id)
        await self.stats.set_user(self.user_id)

    async def save_api_key(self, api_key: str) -> bool:
        try:
            await asyncio.to_thread(save_api_key, self.user_id, api_key)
        except RedisError:
            logger.exception("failed to save api key user=%s", self.user_id)
            self.notices.error("Error", "Failed to save API key. Please try again.")
            return False
        self.store.set_api_key(api_key.strip())
        self.notices.info("API Key Saved", "Your Gemini API key has been saved.")
        return True

    def close(self) -> None:
        self.store.cancel()
        self.feedback.cancel()
        self.stats.teardown()


class SessionRegistry:
    """
    One ChatSession per signed-in user.

    Sessions end on sign-out, or are evicted once idle for ``idle_seconds``
    (checked on each lookup). A session still waiting on an answer is never
    evicted.
    """

    def __init__(
        self,
        persistence: PersistenceClient,
        query_client: QueryApiClient,
        idle_seconds: float = SESSION_IDLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.persistence = persistence
        self.query_client = query_client
        self.idle_seconds = idle_seconds
        self._clock = clock
        self._sessions: Dict[str, ChatSession] = {}
        self._last_seen: Dict[str, float] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, user_id: str) -> Optional[ChatSession]:
        return self._sessions.get(user_id)

    def evict_idle(self) -> int:
        now = self._clock()
        evicted = 0
        for user_id, seen in list(self._last_seen.items()):
            if now - seen <= self.idle_seconds:
                continue
            session = self._sessions.get(user_id)
            if session is not None and session.store.state is StoreState.AWAITING_RESPONSE:
                continue
            logger.info("evicting idle chat session user=%s", user_id)
            self.end(user_id)
            evicted += 1
        return evicted

    async def get_or_create(self, user_id: str) -> ChatSession:
        async with self._lock:
            self.evict_idle()
            session = self._sessions.get(user_id)
            if session is None:
                session = ChatSession(user_id, self.persistence, self.query_client)
                api_key = await asyncio.to_thread(get_api_key, user_id)
                await session.start(api_key)
                self._sessions[user_id] = session
                logger.info("chat session started user=%s", user_id)
            self._last_seen[user_id] = self._clock()
            return session

    def end(self, user_id: str) -> None:
        self._last_seen.pop(user_id, None)
        session = self._sessions.pop(user_id, None)
        if session is not None:
            session.close()
            logger.info("chat session ended user=%s", user_id)

    def close_all(self) -> None:
        for user_id in list(self._sessions):
            self.end(user_id)
