import asyncio

import pytest

from conftest import PNG_B64, settle
from companion.services.planner import PLAN_ERROR, PlannerOrchestrator
from companion.services.state import SideTaskStatus

PLAN = {
    "title": "A Day in Paris",
    "activities": [
        {"time": "09:00", "description": "Louvre", "details": "Take <strong>Metro 1</strong>"},
        {"time": "12:00", "description": "Lunch in Le Marais"},
        {"time": "15:00", "description": "Seine cruise"},
    ],
}


@pytest.fixture
def planner(client, location, channel):
    return PlannerOrchestrator(client, location, channel)


@pytest.mark.asyncio
async def test_plan_then_summary_image(planner, client):
    client.json_responses = [PLAN]
    assert await planner.generate("museums and food") is True

    state = planner.state
    assert state.plan.title == "A Day in Paris"
    assert state.plan.activities[1].details is None
    assert state.loading is False

    await state.image_task.wait()
    assert state.summary_image == f"data:image/png;base64,{PNG_B64}"
    assert state.image_task.status is SideTaskStatus.DONE
    image_request = client.requests("generate_image")[0]
    assert "Louvre, Lunch in Le Marais, Seine cruise" in image_request.prompt


@pytest.mark.asyncio
async def test_image_failure_keeps_plan(planner, client):
    client.json_responses = [PLAN]
    client.fail.add("generate_image")
    await planner.generate("museums")
    await planner.state.image_task.wait()

    state = planner.state
    assert state.plan is not None
    assert state.summary_image is None
    assert state.error is None
    assert state.image_task.status is SideTaskStatus.FAILED


@pytest.mark.asyncio
async def test_plan_visible_before_image_arrives(planner, client):
    client.json_responses = [PLAN]
    client.gates["generate_image"] = asyncio.Event()
    await planner.generate("museums")
    await settle()

    view = planner.to_view("s1")
    assert view.plan is not None
    assert view.loading is False
    assert view.generatingImage is True
    assert view.summaryImage is None

    client.gates["generate_image"].set()
    await planner.state.image_task.wait()
    assert planner.to_view("s1").generatingImage is False


@pytest.mark.asyncio
async def test_plan_failure_sets_error(planner, client):
    client.fail.add("generate_json")
    assert await planner.generate("museums") is False
    assert planner.state.plan is None
    assert planner.state.error == PLAN_ERROR
    assert client.count("generate_image") == 0


@pytest.mark.asyncio
async def test_missing_required_field_is_parse_failure(planner, client):
    client.json_responses = [{"title": "No activities"}]
    await planner.generate("museums")
    assert planner.state.plan is None
    assert planner.state.error == PLAN_ERROR


@pytest.mark.asyncio
async def test_requires_location(client, no_location, channel):
    planner = PlannerOrchestrator(client, no_location, channel)
    assert await planner.generate("museums") is False
    assert planner.state.error.startswith("Location is not available")
    assert client.calls == []


@pytest.mark.asyncio
async def test_requires_preferences(planner, client):
    await planner.generate("  ")
    assert planner.state.error == "Please enter your preferences for the day."
    assert client.calls == []


@pytest.mark.asyncio
async def test_resubmission_while_loading_is_noop(planner, client):
    client.json_responses = [PLAN]
    client.gates["generate_json"] = asyncio.Event()
    task = asyncio.create_task(planner.generate("museums"))
    await settle()

    assert await planner.generate("beaches") is False
    assert client.count("generate_json") == 1

    client.gates["generate_json"].set()
    assert await task is True
    assert client.count("generate_json") == 1


@pytest.mark.asyncio
async def test_new_plan_discards_everything(planner, client):
    client.json_responses = [PLAN]
    await planner.generate("museums")
    await planner.state.image_task.wait()

    assert planner.reset() is True
    state = planner.state
    assert state.plan is None
    assert state.summary_image is None
    assert state.image_task.status is SideTaskStatus.IDLE


@pytest.mark.asyncio
async def test_stale_image_does_not_attach_to_new_plan(planner, client):
    second = dict(PLAN, title="Second plan")
    client.json_responses = [PLAN, second]
    client.gates["generate_image"] = asyncio.Event()
    await planner.generate("museums")
    await settle()
    first_task = planner.state.image_task.task

    client.gates.pop("generate_image").set()
    await planner.generate("parks")
    await asyncio.gather(first_task, return_exceptions=True)
    await planner.state.image_task.wait()

    assert first_task.cancelled()
    assert planner.state.plan.title == "Second plan"
    assert planner.state.summary_image is not None
