import pytest

from gradchat.core.exceptions import NotFoundError, PersistenceError
from gradchat.service.notes.notes import NoteService
from gradchat.service.notice import NoticeBoard
from gradchat.service.report.report import ReportService


@pytest.fixture(scope="function")
def notices():
    return NoticeBoard()


@pytest.fixture(scope="function")
def notes(persistence, notices):
    return NoteService(persistence, notices, user_id="user-1")


@pytest.fixture(scope="function")
def reports(persistence, notices):
    return ReportService(persistence, notices, user_id="user-1")


@pytest.mark.asyncio
async def test_create_update_delete_note(notes, notices):
    note = await notes.create("  Forms  ", "I-20 renewal")
    assert note.title == "Forms"
    assert notices.drain()[-1].title == "Note Saved"

    updated = await notes.update(note.id, content="I-20 renewal by June")
    assert updated.content == "I-20 renewal by June"
    assert notices.drain()[-1].title == "Note Updated"

    assert await notes.delete(note.id) is True
    assert notices.drain()[-1].title == "Note Deleted"
    assert await notes.list() == []


@pytest.mark.asyncio
async def test_blank_title_is_not_saved(notes, notices):
    assert await notes.create("   ") is None
    assert await notes.update("any", title=" ") is None
    assert notices.peek() == []


@pytest.mark.asyncio
async def test_signed_out_notes_do_nothing(persistence, notices):
    service = NoteService(persistence, notices)

    assert await service.create("title") is None
    assert await service.list() == []
    assert await service.delete("any") is False


@pytest.mark.asyncio
async def test_missing_note_raises_not_found(notes):
    with pytest.raises(NotFoundError):
        await notes.update("missing", title="x")
    with pytest.raises(NotFoundError):
        await notes.delete("missing")


@pytest.mark.asyncio
async def test_storage_failure_becomes_notice(notes, notices, persistence, monkeypatch):
    async def broken(*_args, **_kwargs):
        raise PersistenceError("db down")

    monkeypatch.setattr(persistence, "create_note", broken)

    assert await notes.create("Forms") is None
    notice = notices.drain()[-1]
    assert notice.title == "Error"
    assert notice.variant == "destructive"


@pytest.mark.asyncio
async def test_submit_report(reports, notices):
    report = await reports.submit("Is there a summer thesis deadline?", "   ")

    assert report.status == "pending"
    assert report.comment is None
    assert notices.drain()[-1].title == "Report Submitted"
    assert [r.id for r in await reports.list()] == [report.id]


@pytest.mark.asyncio
async def test_blank_report_is_ignored(reports, notices):
    assert await reports.submit("  ") is None
    assert notices.peek() == []
