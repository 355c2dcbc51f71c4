import httpx
import pytest
from fakes import ALICE, NOT_ENOUGH_OPTIONS, TEST_CHAT_ID, TEST_TOKEN
from telegram.constants import UpdateType

from src.core.api import BotApiClient
from src.core.errors import ApiRequestError, ErrorKind, TransportError
from src.core.models import UNKNOWN_ORIGINATOR


@pytest.mark.asyncio
async def test_send_poll_returns_poll_message(fake_bot_api):
    client = fake_bot_api.client()

    poll_message = await client.send_poll(TEST_CHAT_ID, "Best pizza?", ["Margherita", "Hawaii"])

    assert poll_message.chat_id == TEST_CHAT_ID
    assert poll_message.message_id in fake_bot_api.polls
    assert poll_message.poll.poll_id
    assert poll_message.poll.question == "Best pizza?"
    assert poll_message.poll.option_texts == ["Margherita", "Hawaii"]
    assert not poll_message.poll.is_closed

    method, payload = fake_bot_api.calls[-1]
    assert method == "sendPoll"
    assert payload["options"] == [{"text": "Margherita"}, {"text": "Hawaii"}]


@pytest.mark.asyncio
async def test_api_error_keeps_server_description(fake_bot_api):
    client = fake_bot_api.client()

    with pytest.raises(ApiRequestError) as excinfo:
        await client.send_poll(TEST_CHAT_ID, "Lonely?", ["Only option"])

    error = excinfo.value
    assert str(error) == NOT_ENOUGH_OPTIONS
    assert error.description == NOT_ENOUGH_OPTIONS
    assert error.error_code == 400
    assert error.kind == ErrorKind.API_REQUEST


@pytest.mark.asyncio
async def test_stop_poll_returns_closed_snapshot(fake_bot_api):
    client = fake_bot_api.client()
    poll_message = await client.send_poll(TEST_CHAT_ID, "Tea or coffee?", ["Tea", "Coffee"])

    snapshot = await client.stop_poll(poll_message.chat_id, poll_message.message_id)

    assert snapshot.poll_id == poll_message.poll.poll_id
    assert snapshot.is_closed

    with pytest.raises(ApiRequestError, match="already been closed"):
        await client.stop_poll(poll_message.chat_id, poll_message.message_id)


@pytest.mark.asyncio
async def test_fetch_since_parses_and_confirms_updates(fake_bot_api):
    client = fake_bot_api.client()
    poll_message = await client.send_poll(TEST_CHAT_ID, "Tabs or spaces?", ["Tabs", "Spaces"])
    message_id = fake_bot_api.push_chat_message(ALICE, "hello")
    poll_update_id = fake_bot_api.vote(poll_message.message_id, 1, ALICE)

    events = await client.fetch_since(0)

    assert [e.sequence_id for e in events] == [message_id, poll_update_id]
    chat, poll = events
    assert chat.kind == UpdateType.MESSAGE
    assert chat.originator == "alice"
    assert chat.payload.text == "hello"
    assert poll.kind == UpdateType.POLL
    assert poll.originator == UNKNOWN_ORIGINATOR
    assert poll.payload.id == poll_message.poll.poll_id
    assert poll.payload.options[1].voter_count == 1

    # Fetching past the first update confirms it
    events = await client.fetch_since(message_id)
    assert [e.sequence_id for e in events] == [poll_update_id]
    method, payload = fake_bot_api.calls[-1]
    assert method == "getUpdates"
    assert payload["offset"] == message_id + 1


@pytest.mark.asyncio
async def test_poll_answer_originator_is_voter(fake_bot_api):
    client = fake_bot_api.client()
    poll_message = await client.send_poll(
        TEST_CHAT_ID, "Vim or Emacs?", ["Vim", "Emacs"], is_anonymous=False
    )
    fake_bot_api.vote(poll_message.message_id, 0, ALICE)

    events = await client.fetch_since(0)

    assert [e.kind for e in events] == [UpdateType.POLL_ANSWER, UpdateType.POLL]
    assert events[0].originator == "alice"
    assert events[0].payload.option_ids == (0,)


@pytest.mark.asyncio
async def test_rejected_fetch_is_transport_error(fake_bot_api):
    fake_bot_api.reject_updates_with = (
        409,
        "Conflict: terminated by other getUpdates request; "
        "make sure that only one bot instance is running",
    )
    client = fake_bot_api.client()

    with pytest.raises(TransportError, match="Conflict") as excinfo:
        await client.fetch_since(0)

    assert isinstance(excinfo.value.__cause__, ApiRequestError)


@pytest.mark.asyncio
async def test_wrong_token_is_transport_error_when_fetching(fake_bot_api):
    client = BotApiClient("654321:WRONG", transport=fake_bot_api.transport)

    with pytest.raises(TransportError, match="Unauthorized"):
        await client.fetch_since(0)


@pytest.mark.asyncio
async def test_network_failure_is_transport_error():
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = BotApiClient(TEST_TOKEN, transport=httpx.MockTransport(unreachable))

    with pytest.raises(TransportError) as excinfo:
        await client.send_message(TEST_CHAT_ID, "hi")

    assert TEST_TOKEN not in str(excinfo.value)


@pytest.mark.asyncio
async def test_non_json_reply_is_transport_error():
    client = BotApiClient(
        TEST_TOKEN,
        transport=httpx.MockTransport(lambda request: httpx.Response(502, text="Bad Gateway")),
    )

    with pytest.raises(TransportError, match="502"):
        await client.get_me()


@pytest.mark.asyncio
async def test_get_me(fake_bot_api):
    me = await fake_bot_api.client().get_me()

    assert me.username == "test_bot"
    assert me.is_bot


@pytest.mark.asyncio
async def test_stop_poll_parses_current_option_shape():
    """Options carry a persistent_id in current Bot API replies."""
    reply = {
        "id": "5123",
        "question": "Who shot first?",
        "options": [
            {"persistent_id": "a1", "text": "Han Solo", "voter_count": 2},
            {"persistent_id": "b2", "text": "Greedo", "voter_count": 1},
        ],
        "total_voter_count": 3,
        "is_closed": True,
        "is_anonymous": True,
        "type": "regular",
        "allows_multiple_answers": False,
    }
    client = BotApiClient(
        TEST_TOKEN,
        transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"ok": True, "result": reply})
        ),
    )

    snapshot = await client.stop_poll(TEST_CHAT_ID, 42)

    assert snapshot.poll_id == "5123"
    assert [(o.text, o.voter_count) for o in snapshot.options] == [("Han Solo", 2), ("Greedo", 1)]
    assert snapshot.total_voter_count == 3
    assert snapshot.is_closed


@pytest.mark.asyncio
async def test_reply_without_poll_is_transport_error():
    message = {
        "message_id": 7,
        "date": 1700000000,
        "chat": {"id": TEST_CHAT_ID, "type": "supergroup"},
        "text": "not a poll",
    }
    client = BotApiClient(
        TEST_TOKEN,
        transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"ok": True, "result": message})
        ),
    )

    with pytest.raises(TransportError, match="does not carry a poll") as excinfo:
        await client.send_poll(TEST_CHAT_ID, "Tea or coffee?", ["Tea", "Coffee"])

    assert excinfo.value.kind == ErrorKind.TRANSPORT
