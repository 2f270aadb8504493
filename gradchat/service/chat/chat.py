import asyncio
import logging
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional, Set

from gradchat.client.db.persistence import PersistenceClient
from gradchat.client.rag.query_api import QueryApiClient
from gradchat.config.config import (
    ERROR_REPLY,
    GREETING_ID,
    GREETING_TEXT,
    QUERY_MODEL,
    QUERY_TOP_K,
    TITLE_MAX_CHARS,
)
from gradchat.core.exceptions import PersistenceError
from gradchat.db.types import new_id, utcnow
from gradchat.model.chat.conversation_response import ConversationRecord, MessageRecord
from gradchat.model.chat.message import ChatMessage
from gradchat.service.notice import NoticeBoard

logger = logging.getLogger(__name__)


class StoreState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    AWAITING_RESPONSE = "awaiting_response"


def make_title(text: str) -> str:
    text = text.strip()
    if len(text) > TITLE_MAX_CHARS:
        return text[:TITLE_MAX_CHARS] + "..."
    return text


def greeting_message() -> ChatMessage:
    return ChatMessage(id=GREETING_ID, text=GREETING_TEXT, is_user=False, timestamp=utcnow())


def _from_record(record: MessageRecord) -> ChatMessage:
    created_at = record.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return ChatMessage(
        id=record.id,
        text=record.content,
        is_user=record.is_user_message,
        timestamp=created_at,
        retrieved_docs=record.retrieved_docs,
        model_used=record.model_used,
        reply_to_id=record.reply_to_id,
    )


class ConversationStore:
    """
    Owns the transcript and the active conversation id for one user session.

    The transcript shown to the user is authoritative for display order; the
    stored copy is written behind it and a failed write never removes a
    message from the screen.
    """

    def __init__(
        self,
        persistence: PersistenceClient,
        query_client: QueryApiClient,
        notices: Optional[NoticeBoard] = None,
        api_key: str = "",
        model: str = QUERY_MODEL,
        top_k: int = QUERY_TOP_K,
    ) -> None:
        self._persistence = persistence
        self._query_client = query_client
        self.notices = notices or NoticeBoard()
        self._api_key = api_key
        self.model = model
        self.top_k = top_k

        self.user_id: Optional[str] = None
        self.conversation_id: Optional[str] = None
        self.messages: List[ChatMessage] = [greeting_message()]
        self.state = StoreState.UNINITIALIZED

        self._persisted: Set[str] = set()
        self._inflight: Optional[asyncio.Future] = None
        self._cancelled: Set[asyncio.Future] = set()
        self._last_stamp: Optional[datetime] = None
        # Bumped whenever the transcript is replaced; replies for an older one are not shown.
        self._generation = 0

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key and self._api_key.strip())

    def set_api_key(self, api_key: str) -> None:
        self._api_key = api_key

    def is_persisted(self, message_id: str) -> bool:
        return message_id in self._persisted

    def index_of(self, message_id: str) -> Optional[int]:
        for idx, message in enumerate(self.messages):
            if message.id == message_id:
                return idx
        return None

    def _stamp(self) -> datetime:
        # Strictly increasing, so stored created_at order matches transcript order.
        now = utcnow()
        if self._last_stamp is not None and now <= self._last_stamp:
            now = self._last_stamp + timedelta(microseconds=1)
        self._last_stamp = now
        return now

    async def set_user(self, user_id: Optional[str], conversation_id: Optional[str] = None) -> None:
        if user_id != self.user_id:
            self.cancel()
            self.user_id = user_id
            self._reset(conversation_id)
        if not self.is_authenticated:
            self.state = StoreState.UNINITIALIZED
            return
        await self.load_history()

    def _reset(self, conversation_id: Optional[str] = None) -> None:
        self.conversation_id = conversation_id
        self.messages = [greeting_message()]
        self._persisted = set()
        self._last_stamp = None
        self._generation += 1
        # Any submission still running belongs to the old transcript now.
        self._inflight = None
        if self.state is StoreState.AWAITING_RESPONSE:
            self.state = StoreState.READY

    async def load_history(self) -> None:
        if not self.is_authenticated:
            self.state = StoreState.UNINITIALIZED
            return
        if self.conversation_id:
            try:
                records = await self._persistence.get_messages(self.user_id, self.conversation_id)
            except PersistenceError:
                logger.exception("failed to load history conversation=%s", self.conversation_id)
                records = []
            if records:
                self.messages = [_from_record(r) for r in records]
                self._persisted = {r.id for r in records}
                self._last_stamp = max(m.timestamp for m in self.messages)
        if self.state is StoreState.UNINITIALIZED:
            self.state = StoreState.READY

    def clear_conversation(self) -> None:
        """
        Start over locally; stored history is left untouched.

        A question still being answered is cancelled first, so its reply
        never lands in the fresh transcript.
        """
        self.cancel()
        self._reset()
        if self.is_authenticated and self.state is StoreState.UNINITIALIZED:
            self.state = StoreState.READY

    async def list_conversations(self) -> List[ConversationRecord]:
        if not self.is_authenticated:
            return []
        return await self._persistence.list_conversations(self.user_id)

    async def select_conversation(self, conversation_id: str) -> bool:
        if not self.is_authenticated or self.state is StoreState.AWAITING_RESPONSE:
            return False
        # Raises NotFoundError when the conversation is not the user's.
        await self._persistence.get_conversation(self.user_id, conversation_id)
        self._reset(conversation_id)
        await self.load_history()
        return True

    def _reject(self, text: str) -> Optional[str]:
        if not text or not text.strip():
            self.notices.error("Empty Question", "Please type a question first.")
            return "empty"
        if not self.is_authenticated:
            self.notices.error("Sign In Required", "Please sign in to ask questions.")
            return "unauthenticated"
        if not self.has_api_key:
            self.notices.error("API Key Required", "Please configure your Gemini API key in the sidebar.")
            return "no_credential"
        if self.state is StoreState.AWAITING_RESPONSE:
            self.notices.error("Please Wait", "The previous question is still being answered.")
            return "busy"
        return None

    async def _ensure_conversation(self, text: str, generation: int) -> Optional[str]:
        if self.conversation_id:
            return self.conversation_id
        try:
            conversation = await self._persistence.create_conversation(self.user_id, make_title(text))
        except PersistenceError:
            logger.exception("failed to create conversation user=%s", self.user_id)
            return None
        if generation == self._generation:
            self.conversation_id = conversation.id
        return conversation.id

    async def _persist(self, conversation_id: Optional[str], message: ChatMessage) -> None:
        if not conversation_id:
            return
        try:
            await self._persistence.add_message(
                self.user_id,
                conversation_id,
                message.text,
                message.is_user,
                message_id=message.id,
                model_used=message.model_used,
                retrieved_docs=message.retrieved_docs,
                reply_to_id=message.reply_to_id,
                created_at=message.timestamp,
            )
        except PersistenceError:
            logger.exception("failed to store message id=%s conversation=%s", message.id, conversation_id)
            return
        self._persisted.add(message.id)

    async def submit_question(self, text: str) -> bool:
        """
        Ask the query service a question and append the answer.

        Returns False when the question was rejected before anything was
        shown or sent. Query failures are reported in the transcript and
        never raised.
        """
        if self._reject(text):
            return False

        generation = self._generation
        user_message = ChatMessage(id=new_id(), text=text, is_user=True, timestamp=self._stamp())
        self.messages.append(user_message)
        self.state = StoreState.AWAITING_RESPONSE
        conversation_id: Optional[str] = None
        query: Optional[asyncio.Future] = None

        try:
            conversation_id = await self._ensure_conversation(text, generation)
            await self._persist(conversation_id, user_message)
            if generation != self._generation:
                logger.info("transcript replaced before query was sent conversation=%s", conversation_id)
                return True

            query = asyncio.ensure_future(
                self._query_client.query(text, self._api_key, k=self.top_k, model=self.model)
            )
            self._inflight = query
            result = await query

            bot_message = ChatMessage(
                id=new_id(),
                text=result.response,
                is_user=False,
                timestamp=self._stamp(),
                retrieved_docs=result.retrieved_docs,
                model_used=result.model_used,
                reply_to_id=user_message.id,
            )
            if generation == self._generation:
                self.messages.append(bot_message)
            await self._persist(conversation_id, bot_message)
        except asyncio.CancelledError:
            if query is None or query not in self._cancelled:
                raise
            logger.info("query cancelled conversation=%s", conversation_id)
        except Exception:
            logger.exception("error sending message conversation=%s", conversation_id)
            error_message = ChatMessage(
                id=new_id(),
                text=ERROR_REPLY,
                is_user=False,
                timestamp=self._stamp(),
                reply_to_id=user_message.id,
            )
            if generation == self._generation:
                self.messages.append(error_message)
                self.notices.error("Error", "Failed to get response. Please check your API key and try again.")
            await self._persist(conversation_id, error_message)
        finally:
            if query is not None:
                self._cancelled.discard(query)
            if generation == self._generation:
                self._inflight = None
                if self.is_authenticated:
                    self.state = StoreState.READY
        return True

    def cancel(self) -> bool:
        """Abort the in-flight query, if any. No bot message is appended."""
        if self._inflight is None or self._inflight.done():
            return False
        self._cancelled.add(self._inflight)
        self._inflight.cancel()
        return True
