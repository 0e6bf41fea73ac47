import asyncio

import pytest

from conftest import settle
from companion.services.chat import ERROR_REPLY, ChatOrchestrator
from companion.services.state import GREETING, Feature


@pytest.fixture
def chat(client, location, channel):
    return ChatOrchestrator(client, location, channel)


def test_transcript_starts_with_greeting(chat):
    assert [m.text for m in chat.state.messages] == [GREETING]
    assert chat.state.history == []


@pytest.mark.asyncio
async def test_streamed_chunks_accumulate_in_order(chat, client, channel):
    client.stream_chunks = ["Hel", "lo", " there"]
    seen = []

    def on_update(feature):
        assert feature is Feature.ASSISTANT
        last = chat.state.messages[-1]
        if last.role == "model" and chat.state.loading:
            seen.append(last.text)

    channel.subscribe(on_update)
    chat.set_input("Hi")
    assert await chat.send() is True

    final = chat.state.messages[-1]
    assert final.role == "model"
    assert final.text == "Hello there"
    assert seen == ["", "Hel", "Hello", "Hello there"]
    assert all("Hello there".startswith(text) for text in seen)


@pytest.mark.asyncio
async def test_user_message_is_optimistic_and_input_cleared(chat, client, photo):
    client.stream_chunks = ["ok"]
    client.gates["stream_text"] = asyncio.Event()
    chat.set_input("What is this?")
    chat.attach_image(photo)

    task = asyncio.create_task(chat.send())
    await settle()
    user = chat.state.messages[1]
    assert user.role == "user"
    assert user.text == "What is this?"
    assert user.image == photo.data_uri
    assert chat.state.input == ""
    assert chat.state.image is None
    assert chat.state.loading is True

    client.gates["stream_text"].set()
    await task
    assert chat.state.loading is False


@pytest.mark.asyncio
async def test_history_grows_by_one_pair_per_exchange(chat, client, photo):
    client.stream_chunks = ["Sure"]
    chat.set_input("Plan lunch")
    await chat.send()
    assert len(chat.state.history) == 2

    client.stream_chunks = ["Here", " it is"]
    chat.set_input("Describe it")
    chat.attach_image(photo)
    await chat.send()

    history = chat.state.history
    assert len(history) == 4
    assert [turn["role"] for turn in history] == ["user", "model", "user", "model"]
    assert history[2]["parts"][0] == photo.to_part()
    assert history[2]["parts"][1] == {"text": "Describe it"}
    assert history[3]["parts"] == [{"text": "Here it is"}]

    # earlier turns are sent back with the next request
    second = client.requests("stream_text")[1]
    assert second.contents[:2] == history[:2]


@pytest.mark.asyncio
async def test_mid_stream_failure_leaves_history_unchanged(chat, client):
    client.stream_chunks = ["Fine"]
    chat.set_input("first")
    await chat.send()
    before = list(chat.state.history)

    client.stream_chunks = ["Par", "tial", "never"]
    client.stream_fail_after = 2
    chat.set_input("second")
    assert await chat.send() is False

    assert chat.state.history == before
    texts = [m.text for m in chat.state.messages]
    assert texts[-3:] == ["second", "Partial", ERROR_REPLY]
    assert chat.state.messages[-4].text == "Fine"
    assert chat.state.loading is False


@pytest.mark.asyncio
async def test_failure_before_first_chunk_replaces_placeholder(chat, client):
    client.fail.add("stream_text")
    chat.set_input("hello?")
    await chat.send()

    assert [m.role for m in chat.state.messages] == ["model", "user", "model"]
    assert chat.state.messages[-1].text == ERROR_REPLY
    assert chat.state.history == []


@pytest.mark.asyncio
async def test_resubmission_while_loading_is_noop(chat, client):
    client.stream_chunks = ["one"]
    client.gates["stream_text"] = asyncio.Event()
    chat.set_input("first")
    task = asyncio.create_task(chat.send())
    await settle()

    chat.set_input("second")
    assert await chat.send() is False
    assert client.count("stream_text") == 1

    client.gates["stream_text"].set()
    assert await task is True
    assert client.count("stream_text") == 1
    assert [m.text for m in chat.state.messages if m.role == "user"] == ["first"]


@pytest.mark.asyncio
async def test_empty_input_does_nothing(chat, client):
    chat.set_input("   ")
    assert await chat.send() is False
    assert client.calls == []
    assert len(chat.state.messages) == 1


@pytest.mark.asyncio
async def test_location_context_only_in_request(chat, client):
    client.stream_chunks = ["Bonjour"]
    chat.set_input("Where am I?")
    await chat.send()

    request = client.requests("stream_text")[0]
    assert "latitude: 48.8566, longitude: 2.3522" in request.prompt
    assert chat.state.history[0]["parts"] == [{"text": "Where am I?"}]


@pytest.mark.asyncio
async def test_explicit_message_ignores_input_buffer(chat, client, photo):
    client.stream_chunks = ["Nice photo"]
    chat.set_input("typed but not sent")
    assert await chat.send("Look at this", photo) is True

    user = chat.state.messages[1]
    assert (user.text, user.image) == ("Look at this", photo.data_uri)
    assert client.requests("stream_text")[0].parts[0] == photo.to_part()
    assert chat.state.input == ""
