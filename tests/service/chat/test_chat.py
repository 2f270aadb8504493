import asyncio
import json

import httpx
import pytest

from gradchat.config.config import ERROR_REPLY, GREETING_ID
from gradchat.core.exceptions import PersistenceError
from gradchat.service.chat.chat import ConversationStore, StoreState, make_title


async def _wait_for_query(query_service):
    for _ in range(200):
        if query_service.query_requests():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("query was never sent")


@pytest.mark.asyncio
async def test_store_starts_uninitialized_with_greeting(store):
    assert store.state is StoreState.UNINITIALIZED
    assert [m.id for m in store.messages] == [GREETING_ID]

    await store.set_user("user-1")

    assert store.state is StoreState.READY
    assert len(store.messages) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   ", "\n\t"])
async def test_blank_question_creates_nothing(store, persistence, query_service, text):
    await store.set_user("user-1")

    accepted = await store.submit_question(text)

    assert accepted is False
    assert len(store.messages) == 1
    assert store.conversation_id is None
    assert query_service.query_requests() == []
    assert await persistence.list_conversations("user-1") == []
    assert await persistence.count_user_messages("user-1") == 0


@pytest.mark.asyncio
async def test_missing_api_key_blocks_question(persistence, query_client, query_service):
    store = ConversationStore(persistence, query_client, api_key="")
    await store.set_user("user-1")

    accepted = await store.submit_question("What is the application deadline?")

    assert accepted is False
    assert query_service.query_requests() == []
    notices = store.notices.drain()
    assert notices[0].title == "API Key Required"
    assert notices[0].variant == "destructive"


@pytest.mark.asyncio
async def test_unauthenticated_question_is_rejected(store, query_service):
    accepted = await store.submit_question("hello")

    assert accepted is False
    assert query_service.query_requests() == []
    assert store.notices.drain()[0].title == "Sign In Required"


@pytest.mark.asyncio
async def test_submit_question_end_to_end(store, persistence, query_service):
    await store.set_user("user-1")

    accepted = await store.submit_question("What is the application deadline?")

    assert accepted is True
    assert store.state is StoreState.READY
    assert [m.is_user for m in store.messages] == [False, True, False]
    user_msg, bot_msg = store.messages[1], store.messages[2]
    assert user_msg.text == "What is the application deadline?"
    assert bot_msg.text == "Deadlines are..."
    assert bot_msg.model_used == "gemini-2.0-flash-lite"
    assert bot_msg.reply_to_id == user_msg.id

    sent = json.loads(query_service.query_requests()[0].content)
    assert sent == {
        "query": "What is the application deadline?",
        "api_key": "test-key",
        "k": 3,
        "model": "gemini-2.0-flash-lite",
    }

    conversations = await persistence.list_conversations("user-1")
    assert len(conversations) == 1
    assert conversations[0].id == store.conversation_id
    assert conversations[0].title == "What is the application deadline?"

    stored = await persistence.get_messages("user-1", store.conversation_id)
    assert [(m.is_user_message, m.content) for m in stored] == [
        (True, "What is the application deadline?"),
        (False, "Deadlines are..."),
    ]
    assert stored[1].model_used == "gemini-2.0-flash-lite"
    assert store.is_persisted(bot_msg.id)


@pytest.mark.asyncio
async def test_follow_up_reuses_active_conversation(store, persistence):
    await store.set_user("user-1")

    await store.submit_question("first")
    first_id = store.conversation_id
    await store.submit_question("second")

    assert store.conversation_id == first_id
    assert len(await persistence.list_conversations("user-1")) == 1
    assert len(await persistence.get_messages("user-1", first_id)) == 4


@pytest.mark.asyncio
async def test_network_error_appends_single_apology(store, persistence, query_service):
    query_service.error = httpx.ConnectError("connection refused")
    await store.set_user("user-1")

    accepted = await store.submit_question("What is the application deadline?")

    assert accepted is True
    assert store.state is StoreState.READY
    assert len(store.messages) == 3
    apology = store.messages[-1]
    assert apology.is_user is False
    assert apology.text == ERROR_REPLY
    assert store.notices.drain()[-1].title == "Error"

    stored = await persistence.get_messages("user-1", store.conversation_id)
    assert [m.content for m in stored] == ["What is the application deadline?", ERROR_REPLY]


@pytest.mark.asyncio
async def test_non_2xx_response_is_a_failure(store, query_service):
    query_service.status_code = 503
    query_service.reply = {"detail": "sleeping"}
    await store.set_user("user-1")

    await store.submit_question("anything")

    assert store.messages[-1].text == ERROR_REPLY


@pytest.mark.asyncio
async def test_structured_response_is_flattened_to_text(store, query_service):
    query_service.reply = {"response": {"content": "Submit the form by May 1."}, "model_used": "m"}
    await store.set_user("user-1")

    await store.submit_question("form deadline?")

    assert store.messages[-1].text == "Submit the form by May 1."


@pytest.mark.asyncio
async def test_storage_failure_does_not_hide_answer(store, persistence, monkeypatch):
    async def broken_create(*_args, **_kwargs):
        raise PersistenceError("db down")

    monkeypatch.setattr(persistence, "create_conversation", broken_create)
    await store.set_user("user-1")

    await store.submit_question("still answered?")

    assert store.conversation_id is None
    assert store.messages[-1].text == "Deadlines are..."
    assert not store.is_persisted(store.messages[-1].id)


@pytest.mark.asyncio
async def test_clear_resets_transcript_but_keeps_history(store, persistence):
    await store.set_user("user-1")
    await store.submit_question("keep me")
    conversation_id = store.conversation_id

    store.clear_conversation()

    assert store.conversation_id is None
    assert [m.id for m in store.messages] == [GREETING_ID]
    assert len(await persistence.get_messages("user-1", conversation_id)) == 2

    await store.submit_question("new thread")
    assert store.conversation_id != conversation_id
    assert len(await persistence.list_conversations("user-1")) == 2


@pytest.mark.asyncio
async def test_load_history_reproduces_insert_order(store, persistence, query_client):
    await store.set_user("user-1")
    for question in ("one", "two", "three"):
        await store.submit_question(question)
    shown = [(m.id, m.text) for m in store.messages[1:]]

    reloaded = ConversationStore(persistence, query_client, api_key="test-key")
    await reloaded.set_user("user-1", conversation_id=store.conversation_id)

    assert [(m.id, m.text) for m in reloaded.messages] == shown
    assert all(reloaded.is_persisted(m.id) for m in reloaded.messages)


@pytest.mark.asyncio
async def test_load_history_keeps_greeting_when_empty(store, persistence):
    conversation = await persistence.create_conversation("user-1", "empty")

    await store.set_user("user-1", conversation_id=conversation.id)

    assert [m.id for m in store.messages] == [GREETING_ID]
    assert store.state is StoreState.READY


@pytest.mark.asyncio
async def test_question_rejected_while_awaiting_response(store, query_service):
    query_service.hold = asyncio.Event()
    await store.set_user("user-1")

    task = asyncio.create_task(store.submit_question("first"))
    await _wait_for_query(query_service)

    assert store.state is StoreState.AWAITING_RESPONSE
    assert await store.submit_question("second") is False
    assert store.notices.drain()[-1].title == "Please Wait"

    query_service.hold.set()
    await task
    assert store.state is StoreState.READY
    assert [m.text for m in store.messages if m.is_user] == ["first"]


@pytest.mark.asyncio
async def test_cancel_returns_to_ready_without_reply(store, query_service):
    query_service.hold = asyncio.Event()
    await store.set_user("user-1")

    task = asyncio.create_task(store.submit_question("slow one"))
    await _wait_for_query(query_service)

    assert store.cancel() is True
    await task

    assert store.state is StoreState.READY
    assert store.messages[-1].text == "slow one"
    assert store.cancel() is False


@pytest.mark.asyncio
async def test_select_conversation_loads_its_messages(store, persistence):
    await store.set_user("user-1")
    await store.submit_question("older question")
    older = store.conversation_id
    store.clear_conversation()
    await store.submit_question("newer question")

    assert await store.select_conversation(older) is True

    assert store.conversation_id == older
    assert [m.text for m in store.messages][0] == "older question"
    listed = await store.list_conversations()
    assert [c.title for c in listed] == ["newer question", "older question"]


def test_make_title_truncates_long_text():
    long_text = "x" * 60

    assert make_title(long_text) == "x" * 50 + "..."
    assert make_title("short") == "short"
    assert make_title("y" * 50) == "y" * 50


@pytest.mark.asyncio
async def test_clear_while_awaiting_drops_the_late_reply(store, persistence, query_service):
    query_service.hold = asyncio.Event()
    await store.set_user("user-1")

    task = asyncio.create_task(store.submit_question("slow one"))
    await _wait_for_query(query_service)
    old_conversation = store.conversation_id

    store.clear_conversation()
    query_service.hold.set()
    await task

    assert [m.id for m in store.messages] == [GREETING_ID]
    assert store.conversation_id is None
    assert store.state is StoreState.READY
    stored = await persistence.get_messages("user-1", old_conversation)
    assert [m.content for m in stored] == ["slow one"]


@pytest.mark.asyncio
async def test_clear_before_query_is_sent_skips_the_query(store, persistence, query_service, monkeypatch):
    await store.set_user("user-1")
    original_create = persistence.create_conversation

    async def create_then_clear(*args, **kwargs):
        conversation = await original_create(*args, **kwargs)
        store.clear_conversation()
        return conversation

    monkeypatch.setattr(persistence, "create_conversation", create_then_clear)

    assert await store.submit_question("first") is True

    assert query_service.query_requests() == []
    assert [m.id for m in store.messages] == [GREETING_ID]
    assert store.conversation_id is None
    assert store.state is StoreState.READY


@pytest.mark.asyncio
async def test_question_after_clear_uses_new_conversation(store, persistence, query_service):
    query_service.hold = asyncio.Event()
    await store.set_user("user-1")
    task = asyncio.create_task(store.submit_question("abandoned"))
    await _wait_for_query(query_service)
    store.clear_conversation()
    await task

    query_service.hold = None
    await store.submit_question("fresh start")

    assert [m.text for m in store.messages[1:]] == ["fresh start", "Deadlines are..."]
    assert len(await persistence.list_conversations("user-1")) == 2
