from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response

from gradchat.api.dependencies import get_registry, get_session, get_user_id
from gradchat.core.exceptions import ConfigurationError, NotFoundError
from gradchat.model.chat.chat_request import QuestionRequest
from gradchat.model.chat.chat_response import ChatResponse, ConversationListResponse
from gradchat.model.chat.session_request import ApiKeyRequest, ApiKeyStatusResponse, SessionEndResponse
from gradchat.model.feedback.feedback import FeedbackBeginRequest, FeedbackStatusResponse, FeedbackSubmitRequest
from gradchat.model.note.note import NoteCreate, NoteRecord, NoteUpdate
from gradchat.model.report.report import ReportCreate, ReportRecord
from gradchat.model.stats.stats import Stats
from gradchat.service.session import ChatSession, SessionRegistry

api_router = APIRouter()


def _chat_response(session: ChatSession) -> ChatResponse:
    store = session.store
    return ChatResponse(
        state=store.state.value,
        conversation_id=store.conversation_id,
        messages=list(store.messages),
        notices=session.notices.drain(),
    )


def _feedback_response(session: ChatSession) -> FeedbackStatusResponse:
    pending = session.feedback.pending
    return FeedbackStatusResponse(
        open=pending is not None,
        polarity=pending.polarity if pending else None,
        notices=session.notices.drain(),
    )


@api_router.get("/chat/transcript", response_model=ChatResponse)
async def get_transcript(session: ChatSession = Depends(get_session)):
    return _chat_response(session)


@api_router.post("/chat/questions", response_model=ChatResponse)
async def submit_question(req: QuestionRequest, session: ChatSession = Depends(get_session)):
    await session.store.submit_question(req.text)
    return _chat_response(session)


@api_router.post("/chat/clear", response_model=ChatResponse)
async def clear_chat(session: ChatSession = Depends(get_session)):
    session.feedback.cancel()
    session.store.clear_conversation()
    return _chat_response(session)


@api_router.post("/chat/cancel", response_model=ChatResponse)
async def cancel_question(session: ChatSession = Depends(get_session)):
    session.store.cancel()
    return _chat_response(session)


@api_router.get("/chat/conversations", response_model=ConversationListResponse)
async def list_conversations(session: ChatSession = Depends(get_session)):
    return ConversationListResponse(conversations=await session.store.list_conversations())


@api_router.post("/chat/conversations/{conversation_id}/select", response_model=ChatResponse)
async def select_conversation(conversation_id: str, session: ChatSession = Depends(get_session)):
    try:
        selected = await session.store.select_conversation(conversation_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="conversation not found")
    if not selected:
        raise HTTPException(status_code=409, detail="a question is still being answered")
    session.feedback.cancel()
    return _chat_response(session)


@api_router.post("/feedback/begin", response_model=FeedbackStatusResponse)
async def begin_feedback(req: FeedbackBeginRequest, session: ChatSession = Depends(get_session)):
    session.feedback.begin_feedback(req.message_id, req.polarity)
    return _feedback_response(session)


@api_router.post("/feedback/submit", response_model=FeedbackStatusResponse)
async def submit_feedback(req: FeedbackSubmitRequest, session: ChatSession = Depends(get_session)):
    await session.feedback.collect_and_submit(req.comment, req.corrected_question, req.correct_answer)
    return _feedback_response(session)


@api_router.post("/feedback/cancel", response_model=FeedbackStatusResponse)
async def cancel_feedback(session: ChatSession = Depends(get_session)):
    session.feedback.cancel()
    return _feedback_response(session)


@api_router.get("/notes", response_model=List[NoteRecord])
async def list_notes(session: ChatSession = Depends(get_session)):
    return await session.notes.list()


@api_router.post("/notes", response_model=NoteRecord, status_code=201)
async def create_note(req: NoteCreate, session: ChatSession = Depends(get_session)):
    note = await session.notes.create(req.title, req.content)
    if note is None:
        raise HTTPException(status_code=400, detail="note could not be saved")
    return note


@api_router.patch("/notes/{note_id}", response_model=NoteRecord)
async def update_note(note_id: str, req: NoteUpdate, session: ChatSession = Depends(get_session)):
    try:
        note = await session.notes.update(note_id, req.title, req.content)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="note not found")
    if note is None:
        raise HTTPException(status_code=400, detail="note could not be updated")
    return note


@api_router.delete("/notes/{note_id}", status_code=204)
async def delete_note(note_id: str, session: ChatSession = Depends(get_session)):
    try:
        deleted = await session.notes.delete(note_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="note not found")
    if not deleted:
        raise HTTPException(status_code=400, detail="note could not be deleted")
    return Response(status_code=204)


@api_router.get("/reports", response_model=List[ReportRecord])
async def list_reports(session: ChatSession = Depends(get_session)):
    return await session.reports.list()


@api_router.post("/reports", response_model=ReportRecord, status_code=201)
async def submit_report(req: ReportCreate, session: ChatSession = Depends(get_session)):
    report = await session.reports.submit(req.question, req.comment)
    if report is None:
        raise HTTPException(status_code=400, detail="report could not be submitted")
    return report


@api_router.get("/config/api-key", response_model=ApiKeyStatusResponse)
async def get_api_key_status(session: ChatSession = Depends(get_session)):
    return ApiKeyStatusResponse(configured=session.store.has_api_key)


@api_router.put("/config/api-key", response_model=ApiKeyStatusResponse)
async def save_api_key(req: ApiKeyRequest, session: ChatSession = Depends(get_session)):
    try:
        await session.save_api_key(req.api_key)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return ApiKeyStatusResponse(configured=session.store.has_api_key, notices=session.notices.drain())


@api_router.get("/stats", response_model=Stats)
async def get_stats(session: ChatSession = Depends(get_session)):
    return await session.stats.refresh()


@api_router.post("/session/end", response_model=SessionEndResponse)
async def end_session(user_id: str = Depends(get_user_id), sessions: SessionRegistry = Depends(get_registry)):
    # Sign-out: drops the in-memory session and its change listeners.
    ended = sessions.get(user_id) is not None
    sessions.end(user_id)
    return SessionEndResponse(ended=ended)
