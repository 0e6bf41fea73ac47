import asyncio

import pytest

from conftest import settle
from companion.services.lens import ANALYSIS_ERROR, LensOrchestrator
from companion.services.prompts import DEFAULT_LENS_PROMPT


@pytest.fixture
def lens(client, location, channel):
    return LensOrchestrator(client, location, channel)


@pytest.mark.asyncio
async def test_analyze_with_default_prompt(lens, client, photo):
    client.texts = ["This is the Eiffel Tower."]
    lens.select_image(photo)
    assert await lens.analyze() is True

    assert lens.state.analysis == "This is the Eiffel Tower."
    request = client.requests("generate_text")[0]
    assert request.parts[0] == photo.to_part()
    assert request.prompt.startswith(DEFAULT_LENS_PROMPT)


@pytest.mark.asyncio
async def test_requires_image(lens, client):
    assert await lens.analyze("What is this?") is False
    assert lens.state.error == "Please select an image first."
    assert client.calls == []


@pytest.mark.asyncio
async def test_new_image_clears_previous_analysis(lens, client, photo):
    lens.select_image(photo)
    await lens.analyze()
    assert lens.state.analysis

    lens.select_image(photo)
    assert lens.state.analysis == ""
    assert lens.state.error is None


@pytest.mark.asyncio
async def test_failure_sets_error(lens, client, photo):
    client.fail.add("generate_text")
    lens.select_image(photo)
    assert await lens.analyze("Is it open?") is False
    assert lens.state.error == ANALYSIS_ERROR
    assert lens.state.loading is False


@pytest.mark.asyncio
async def test_resubmission_while_loading_is_noop(lens, client, photo):
    client.gates["generate_text"] = asyncio.Event()
    lens.select_image(photo)
    task = asyncio.create_task(lens.analyze())
    await settle()
    assert await lens.analyze("again") is False
    client.gates["generate_text"].set()
    await task
    assert client.count("generate_text") == 1
