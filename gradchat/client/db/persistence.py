"""
Persistence client

Typed, user-scoped access to the five stored record kinds (conversations,
messages, feedback, notes, reported questions) plus change notifications.

Every public method is a coroutine: the blocking SQLAlchemy work runs in a
worker thread through ``run_db`` with a timeout, and any database failure is
raised as ``PersistenceError``. Rows are returned as pydantic records so ORM
instances never leave this module. A ``ChangeEvent`` is published only after
the owning transaction committed.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from gradchat.client.db.psql import run_db, session_scope
from gradchat.client.db.realtime import ChangeEvent, ChangeFeed, Listener, Subscription
from gradchat.config.config import DB_TIMEOUT_SECONDS, REPORT_STATUSES
from gradchat.core.exceptions import NotFoundError, PersistenceError
from gradchat.db.models import Conversation, Feedback, Message, Note, ReportedQuestion
from gradchat.db.session import SessionLocal
from gradchat.db.types import new_id, utcnow
from gradchat.model.chat.conversation_response import ConversationRecord, MessageRecord
from gradchat.model.feedback.feedback import FeedbackCreate, FeedbackRecord
from gradchat.model.note.note import NoteRecord
from gradchat.model.report.report import ReportRecord

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class PersistenceClient:
    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        feed: Optional[ChangeFeed] = None,
        timeout: Optional[float] = DB_TIMEOUT_SECONDS,
    ) -> None:
        self._factory = session_factory or SessionLocal
        self.feed = feed or ChangeFeed()
        self._timeout = timeout

    async def _run(self, fn, *args):
        return await run_db(fn, *args, timeout=self._timeout)

    def _emit(self, table: str, event_type: str, user_id: str, record: Any) -> None:
        payload = record.model_dump(mode="json") if hasattr(record, "model_dump") else dict(record)
        self.feed.publish(ChangeEvent(table=table, event_type=event_type, user_id=user_id, record=payload))

    def subscribe(self, table: str, callback: Listener, user_id: Optional[str] = None) -> Subscription:
        return self.feed.subscribe(table, callback, user_id=user_id)

    # ------------------------------------------------------------------ #
    # Conversations
    # ------------------------------------------------------------------ #

    def _create_conversation(self, user_id: str, title: Optional[str]) -> ConversationRecord:
        now = utcnow()
        with session_scope(self._factory) as db:
            row = Conversation(
                id=new_id(),
                user_id=user_id,
                title=title or "New Conversation",
                created_at=now,
                updated_at=now,
            )
            db.add(row)
            db.flush()
            return ConversationRecord.model_validate(row)

    async def create_conversation(self, user_id: str, title: Optional[str] = None) -> ConversationRecord:
        record = await self._run(self._create_conversation, user_id, title)
        self._emit("chat_conversations", "INSERT", user_id, record)
        return record

    def _owned_conversation(self, db, user_id: str, conversation_id: str) -> Conversation:
        row = db.get(Conversation, conversation_id)
        if row is None or row.user_id != user_id:
            raise NotFoundError(f"conversation {conversation_id} not found")
        return row

    def _get_conversation(self, user_id: str, conversation_id: str) -> ConversationRecord:
        with session_scope(self._factory) as db:
            return ConversationRecord.model_validate(self._owned_conversation(db, user_id, conversation_id))

    async def get_conversation(self, user_id: str, conversation_id: str) -> ConversationRecord:
        return await self._run(self._get_conversation, user_id, conversation_id)

    def _list_conversations(self, user_id: str) -> List[ConversationRecord]:
        with session_scope(self._factory) as db:
            rows = db.execute(
                select(Conversation)
                .where(Conversation.user_id == user_id)
                .order_by(Conversation.updated_at.desc())
            ).scalars().all()
            return [ConversationRecord.model_validate(r) for r in rows]

    async def list_conversations(self, user_id: str) -> List[ConversationRecord]:
        return await self._run(self._list_conversations, user_id)

    def _update_conversation(self, user_id: str, conversation_id: str, title: Optional[str]) -> ConversationRecord:
        with session_scope(self._factory) as db:
            row = self._owned_conversation(db, user_id, conversation_id)
            if title is not None:
                row.title = title
            row.updated_at = max(_as_utc(row.updated_at), utcnow())
            db.flush()
            return ConversationRecord.model_validate(row)

    async def update_conversation(
        self, user_id: str, conversation_id: str, title: Optional[str] = None
    ) -> ConversationRecord:
        record = await self._run(self._update_conversation, user_id, conversation_id, title)
        self._emit("chat_conversations", "UPDATE", user_id, record)
        return record

    # ------------------------------------------------------------------ #
    # Messages
    # ------------------------------------------------------------------ #

    def _add_message(self, user_id: str, conversation_id: str, fields: dict) -> MessageRecord:
        created_at = fields.get("created_at") or utcnow()
        with session_scope(self._factory) as db:
            conversation = self._owned_conversation(db, user_id, conversation_id)
            row = Message(
                id=fields.get("id") or new_id(),
                conversation_id=conversation_id,
                user_id=user_id,
                content=fields["content"],
                is_user_message=fields["is_user_message"],
                model_used=fields.get("model_used"),
                retrieved_docs=fields.get("retrieved_docs"),
                reply_to_id=fields.get("reply_to_id"),
                created_at=created_at,
            )
            db.add(row)
            conversation.updated_at = max(_as_utc(conversation.updated_at), _as_utc(created_at), utcnow())
            db.flush()
            return MessageRecord.model_validate(row)

    async def add_message(
        self,
        user_id: str,
        conversation_id: str,
        content: str,
        is_user_message: bool,
        *,
        message_id: Optional[str] = None,
        model_used: Optional[str] = None,
        retrieved_docs: Optional[List[Any]] = None,
        reply_to_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> MessageRecord:
        fields = {
            "id": message_id,
            "content": content,
            "is_user_message": is_user_message,
            "model_used": model_used,
            "retrieved_docs": retrieved_docs,
            "reply_to_id": reply_to_id,
            "created_at": created_at,
        }
        record = await self._run(self._add_message, user_id, conversation_id, fields)
        self._emit("chat_messages", "INSERT", user_id, record)
        return record

    def _get_messages(self, user_id: str, conversation_id: str) -> List[MessageRecord]:
        with session_scope(self._factory) as db:
            rows = db.execute(
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .where(Message.user_id == user_id)
                .order_by(Message.created_at.asc())
            ).scalars().all()
            return [MessageRecord.model_validate(r) for r in rows]

    async def get_messages(self, user_id: str, conversation_id: str) -> List[MessageRecord]:
        return await self._run(self._get_messages, user_id, conversation_id)

    def _count_user_messages(self, user_id: str, start: Optional[datetime], end: Optional[datetime]) -> int:
        stmt = (
            select(func.count(Message.id))
            .where(Message.user_id == user_id)
            .where(Message.is_user_message.is_(True))
        )
        if start is not None:
            stmt = stmt.where(Message.created_at >= start)
        if end is not None:
            stmt = stmt.where(Message.created_at < end)
        with session_scope(self._factory) as db:
            return int(db.execute(stmt).scalar_one())

    async def count_user_messages(
        self, user_id: str, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> int:
        """Count the user's own questions, optionally within ``[start, end)`` (UTC)."""
        return await self._run(self._count_user_messages, user_id, start, end)

    # ------------------------------------------------------------------ #
    # Feedback
    # ------------------------------------------------------------------ #

    def _add_feedback(self, data: FeedbackCreate) -> FeedbackRecord:
        with session_scope(self._factory) as db:
            if data.message_id is not None:
                message = db.get(Message, data.message_id)
                if message is None or message.user_id != data.user_id:
                    raise NotFoundError(f"message {data.message_id} not found")
                if message.is_user_message:
                    raise PersistenceError("feedback must reference a bot message")
            row = Feedback(id=new_id(), created_at=utcnow(), **data.model_dump())
            db.add(row)
            db.flush()
            return FeedbackRecord.model_validate(row)

    async def add_feedback(self, data: FeedbackCreate) -> FeedbackRecord:
        record = await self._run(self._add_feedback, data)
        self._emit("chat_feedback", "INSERT", data.user_id, record)
        return record

    # ------------------------------------------------------------------ #
    # Notes
    # ------------------------------------------------------------------ #

    def _create_note(self, user_id: str, title: str, content: Optional[str]) -> NoteRecord:
        now = utcnow()
        with session_scope(self._factory) as db:
            row = Note(id=new_id(), user_id=user_id, title=title, content=content, created_at=now, updated_at=now)
            db.add(row)
            db.flush()
            return NoteRecord.model_validate(row)

    async def create_note(self, user_id: str, title: str, content: Optional[str] = None) -> NoteRecord:
        record = await self._run(self._create_note, user_id, title, content)
        self._emit("notes", "INSERT", user_id, record)
        return record

    def _list_notes(self, user_id: str) -> List[NoteRecord]:
        with session_scope(self._factory) as db:
            rows = db.execute(
                select(Note).where(Note.user_id == user_id).order_by(Note.created_at.desc())
            ).scalars().all()
            return [NoteRecord.model_validate(r) for r in rows]

    async def list_notes(self, user_id: str) -> List[NoteRecord]:
        return await self._run(self._list_notes, user_id)

    def _owned_note(self, db, user_id: str, note_id: str) -> Note:
        row = db.get(Note, note_id)
        if row is None or row.user_id != user_id:
            raise NotFoundError(f"note {note_id} not found")
        return row

    def _update_note(self, user_id: str, note_id: str, changes: dict) -> NoteRecord:
        with session_scope(self._factory) as db:
            row = self._owned_note(db, user_id, note_id)
            for key, value in changes.items():
                setattr(row, key, value)
            row.updated_at = max(_as_utc(row.updated_at), utcnow())
            db.flush()
            return NoteRecord.model_validate(row)

    async def update_note(
        self, user_id: str, note_id: str, title: Optional[str] = None, content: Optional[str] = None
    ) -> NoteRecord:
        changes = {k: v for k, v in (("title", title), ("content", content)) if v is not None}
        record = await self._run(self._update_note, user_id, note_id, changes)
        self._emit("notes", "UPDATE", user_id, record)
        return record

    def _delete_note(self, user_id: str, note_id: str) -> NoteRecord:
        with session_scope(self._factory) as db:
            row = self._owned_note(db, user_id, note_id)
            record = NoteRecord.model_validate(row)
            db.delete(row)
            return record

    async def delete_note(self, user_id: str, note_id: str) -> None:
        record = await self._run(self._delete_note, user_id, note_id)
        self._emit("notes", "DELETE", user_id, record)

    def _count_notes(self, user_id: str) -> int:
        with session_scope(self._factory) as db:
            return int(db.execute(select(func.count(Note.id)).where(Note.user_id == user_id)).scalar_one())

    async def count_notes(self, user_id: str) -> int:
        return await self._run(self._count_notes, user_id)

    # ------------------------------------------------------------------ #
    # Reported questions
    # ------------------------------------------------------------------ #

    def _submit_report(self, user_id: str, question: str, comment: Optional[str]) -> ReportRecord:
        with session_scope(self._factory) as db:
            row = ReportedQuestion(
                id=new_id(),
                user_id=user_id,
                question=question,
                comment=comment,
                status="pending",
                created_at=utcnow(),
            )
            db.add(row)
            db.flush()
            return ReportRecord.model_validate(row)

    async def submit_report(self, user_id: str, question: str, comment: Optional[str] = None) -> ReportRecord:
        record = await self._run(self._submit_report, user_id, question, comment)
        self._emit("reported_questions", "INSERT", user_id, record)
        return record

    def _list_reports(self, user_id: str) -> List[ReportRecord]:
        with session_scope(self._factory) as db:
            rows = db.execute(
                select(ReportedQuestion)
                .where(ReportedQuestion.user_id == user_id)
                .order_by(ReportedQuestion.created_at.desc())
            ).scalars().all()
            return [ReportRecord.model_validate(r) for r in rows]

    async def list_reports(self, user_id: str) -> List[ReportRecord]:
        return await self._run(self._list_reports, user_id)

    def _update_report_status(self, report_id: str, status: str) -> ReportRecord:
        with session_scope(self._factory) as db:
            row = db.get(ReportedQuestion, report_id)
            if row is None:
                raise NotFoundError(f"report {report_id} not found")
            row.status = status
            db.flush()
            return ReportRecord.model_validate(row)

    async def update_report_status(self, report_id: str, status: str) -> ReportRecord:
        """Reviewer-side status change; not reachable from the user routes."""
        if status not in REPORT_STATUSES:
            raise ValueError(f"invalid report status: {status}")
        record = await self._run(self._update_report_status, report_id, status)
        self._emit("reported_questions", "UPDATE", record.user_id, record)
        return record

    def _count_reports(self, user_id: str) -> int:
        with session_scope(self._factory) as db:
            return int(
                db.execute(
                    select(func.count(ReportedQuestion.id)).where(ReportedQuestion.user_id == user_id)
                ).scalar_one()
            )

    async def count_reports(self, user_id: str) -> int:
        return await self._run(self._count_reports, user_id)
