import pytest

from conftest import settle
from companion.services.home import HOME_ERROR, HomeOrchestrator
from companion.services.location import LocationProvider

HOME = {"weather": "Sunny, 24°C", "tip": "Museums are free on the first Sunday.", "city": "Paris"}


@pytest.mark.asyncio
async def test_requests_once_when_location_arrives(client, channel):
    provider = LocationProvider()
    home = HomeOrchestrator(client, provider, channel)
    assert home.status == "loading"
    assert client.calls == []

    client.json_responses = [HOME]
    provider.report(48.8566, 2.3522)
    await home.sync()

    assert home.status == "ready"
    assert home.state.data.city == "Paris"
    assert client.count("generate_json") == 1

    await home.sync()
    assert client.count("generate_json") == 1


@pytest.mark.asyncio
async def test_sync_with_settled_location(client, location, channel):
    client.json_responses = [HOME]
    home = HomeOrchestrator(client, location, channel)
    await home.sync()
    assert home.to_view("s1").data.weather == "Sunny, 24°C"


@pytest.mark.asyncio
async def test_location_error_makes_no_request(client, no_location, channel):
    home = HomeOrchestrator(client, no_location, channel)
    await home.sync()
    view = home.to_view("s1")
    assert view.status == "location_error"
    assert view.error == "User denied Geolocation"
    assert client.calls == []


@pytest.mark.asyncio
async def test_failure_is_not_retried(client, location, channel):
    client.fail.add("generate_json")
    home = HomeOrchestrator(client, location, channel)
    await home.sync()
    assert home.status == "error"
    assert home.state.error == HOME_ERROR

    client.fail.clear()
    client.json_responses = [HOME]
    await home.sync()
    await settle()
    assert client.count("generate_json") == 1
    assert home.state.data is None


@pytest.mark.asyncio
async def test_close_stops_listening(client, channel):
    provider = LocationProvider()
    home = HomeOrchestrator(client, provider, channel)
    home.close()
    provider.report(1.0, 2.0)
    await settle()
    assert client.calls == []
