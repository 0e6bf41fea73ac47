import asyncio
import base64
from typing import Dict, List, Optional, Tuple

import numpy as np
import pytest

from companion.config import Settings
from companion.errors import ProviderError
from companion.services.location import LocationProvider
from companion.services.state import SessionResources, StateChannel
from companion.utils.image import InlineImage

PCM_SAMPLES = np.array([0, 16384, -16384, 32767], dtype="<i2")
SPEECH_B64 = base64.b64encode(PCM_SAMPLES.tobytes()).decode("utf-8")
PNG_B64 = base64.b64encode(b"\x89PNG fake").decode("utf-8")


class FakeGeminiClient:
    """Call-counting stand-in for GeminiClient."""

    def __init__(self):
        self.calls: List[Tuple[str, object]] = []
        self.texts: List[str] = []
        self.default_text = "translated"
        self.json_responses: List[dict] = []
        self.stream_chunks: List[str] = []
        self.stream_fail_after: Optional[int] = None
        self.speech = SPEECH_B64
        self.image = PNG_B64
        self.fail = set()
        self.gates: Dict[str, asyncio.Event] = {}

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    def requests(self, method: str) -> list:
        return [request for name, request in self.calls if name == method]

    async def _enter(self, method: str, request) -> None:
        self.calls.append((method, request))
        gate = self.gates.get(method)
        if gate is not None:
            await gate.wait()
        if method in self.fail:
            raise ProviderError(f"{method} failed")

    async def generate_text(self, request) -> str:
        await self._enter("generate_text", request)
        return self.texts.pop(0) if self.texts else self.default_text

    async def generate_json(self, request) -> dict:
        await self._enter("generate_json", request)
        return self.json_responses.pop(0)

    async def stream_text(self, request):
        await self._enter("stream_text", request)
        for i, chunk in enumerate(self.stream_chunks):
            if self.stream_fail_after is not None and i >= self.stream_fail_after:
                raise ProviderError("stream broke")
            yield chunk

    async def synthesize_speech(self, request) -> str:
        await self._enter("synthesize_speech", request)
        return self.speech

    async def generate_image(self, request) -> str:
        await self._enter("generate_image", request)
        return self.image


async def settle(times: int = 5) -> None:
    """Let scheduled tasks run up to their next suspension point."""
    for _ in range(times):
        await asyncio.sleep(0)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        gemini_api_key="test-key",
        audio_output="client",
        speech_input="upload",
        request_timeout=5.0,
    )


@pytest.fixture
def client():
    return FakeGeminiClient()


@pytest.fixture
def channel():
    return StateChannel()


@pytest.fixture
def location():
    provider = LocationProvider()
    provider.report(48.8566, 2.3522)
    return provider


@pytest.fixture
def no_location():
    provider = LocationProvider()
    provider.fail("User denied Geolocation")
    return provider


@pytest.fixture
def resources(settings):
    return SessionResources(settings)


@pytest.fixture
def photo():
    return InlineImage(mime_type="image/png", data=b"\x89PNG\r\n\x1a\nphoto")
