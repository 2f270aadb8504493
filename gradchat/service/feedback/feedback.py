import logging
from dataclasses import dataclass
from typing import Optional

from gradchat.client.db.persistence import PersistenceClient
from gradchat.client.rag.query_api import QueryApiClient
from gradchat.config.config import FEEDBACK_FORWARD_ENABLED, GREETING_ID
from gradchat.core.exceptions import GradChatError, PersistenceError
from gradchat.db.types import utcnow
from gradchat.model.chat.message import ChatMessage
from gradchat.model.feedback.feedback import FeedbackCreate, FeedbackRecord, Polarity
from gradchat.model.query.query_request import RemoteFeedbackRequest
from gradchat.service.chat.chat import ConversationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingFeedback:
    target: ChatMessage
    query: ChatMessage
    polarity: Polarity
    conversation_id: Optional[str]


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value


class FeedbackWorkflow:
    """Thumbs up/down on one bot answer, with an optional correction."""

    def __init__(
        self,
        store: ConversationStore,
        persistence: PersistenceClient,
        query_client: Optional[QueryApiClient] = None,
        forward: bool = FEEDBACK_FORWARD_ENABLED,
    ) -> None:
        self._store = store
        self._persistence = persistence
        self._query_client = query_client
        self._forward = forward
        self.pending: Optional[PendingFeedback] = None

    @property
    def notices(self):
        return self._store.notices

    @property
    def is_open(self) -> bool:
        return self.pending is not None

    def _find_query(self, index: int, target: ChatMessage) -> Optional[ChatMessage]:
        messages = self._store.messages
        if target.reply_to_id:
            ref = self._store.index_of(target.reply_to_id)
            if ref is not None and messages[ref].is_user:
                return messages[ref]
            return None
        # History rows written without a reply reference fall back to adjacency.
        if index < 1:
            return None
        previous = messages[index - 1]
        return previous if previous.is_user else None

    def begin_feedback(self, message_id: str, polarity: Polarity) -> bool:
        """
        Open feedback collection for a bot message.

        Returns False, without opening anything, when the message is the
        greeting, a user message, not in the transcript, or has no user
        question in front of it. Calling again restarts the flow.
        """
        self.pending = None
        if not self._store.is_authenticated or message_id == GREETING_ID:
            return False
        index = self._store.index_of(message_id)
        if index is None:
            return False
        target = self._store.messages[index]
        if target.is_user:
            return False
        query = self._find_query(index, target)
        if query is None:
            return False
        self.pending = PendingFeedback(
            target=target,
            query=query,
            polarity=Polarity(polarity),
            conversation_id=self._store.conversation_id,
        )
        return True

    def cancel(self) -> None:
        self.pending = None

    def _build(self, pending: PendingFeedback, comment: str, corrected_question, correct_answer) -> FeedbackCreate:
        target = pending.target
        data = FeedbackCreate(
            user_id=self._store.user_id,
            message_id=target.id if self._store.is_persisted(target.id) else None,
            conversation_id=pending.conversation_id,
            feedback_type=pending.polarity.feedback_type,
            user_query=pending.query.text,
            bot_response=target.text,
            model_used=target.model_used,
            retrieved_docs=target.retrieved_docs,
        )
        if pending.polarity is Polarity.POSITIVE:
            data.thumbs_up_reason = comment
        else:
            data.thumbs_down_reason = comment
            data.corrected_question = _blank_to_none(corrected_question)
            data.correct_answer = _blank_to_none(correct_answer)
        return data

    async def collect_and_submit(
        self,
        comment: str,
        corrected_question: Optional[str] = None,
        correct_answer: Optional[str] = None,
    ) -> Optional[FeedbackRecord]:
        pending = self.pending
        if pending is None:
            return None
        if self._store.index_of(pending.target.id) is None:
            # Transcript was cleared or switched underneath the open form.
            self.pending = None
            return None
        if not comment or not comment.strip():
            self.notices.error("Comment Required", "Please tell us what was right or wrong with the answer.")
            return None

        data = self._build(pending, comment, corrected_question, correct_answer)
        try:
            record = await self._persistence.add_feedback(data)
        except PersistenceError:
            logger.exception("error submitting feedback message=%s", pending.target.id)
            self.notices.error("Error", "Failed to submit feedback. Please try again.")
            return None

        if self._forward and self._query_client is not None:
            await self._mirror(record, pending)

        self.pending = None
        self.notices.info("Feedback submitted", "Thank you for your feedback!")
        return record

    async def _mirror(self, record: FeedbackRecord, pending: PendingFeedback) -> None:
        payload = RemoteFeedbackRequest(
            timestamp=utcnow().isoformat(),
            query=record.user_query or "",
            response=record.bot_response or "",
            feedback_type=record.feedback_type,
            thumbs_up_reason=record.thumbs_up_reason,
            thumbs_down_reason=record.thumbs_down_reason,
            corrected_question=record.corrected_question,
            correct_answer=record.correct_answer,
            model_used=record.model_used,
            retrieved_docs=record.retrieved_docs,
            source_message_id=pending.target.id,
        )
        try:
            await self._query_client.submit_feedback(payload)
        except GradChatError:
            logger.exception("failed to mirror feedback id=%s", record.id)
