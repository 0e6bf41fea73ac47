import json
import logging
import os
import re
from typing import Any, AsyncIterator, Dict, Optional

# Suppress gRPC logs
os.environ.setdefault("GRPC_VERBOSITY", "ERROR")
os.environ.setdefault("GRPC_LOG_SEVERITY_LEVEL", "ERROR")

import httpx
import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as auth_exceptions
from google.generativeai.types import BlockedPromptException, StopCandidateException

from companion.config import Settings
from companion.errors import ProviderError
from companion.services.prompts import GeminiRequest, RequestKind

logger = logging.getLogger(__name__)

_SDK_FAILURES = (
    google_exceptions.GoogleAPIError,
    auth_exceptions.GoogleAuthError,
    BlockedPromptException,
    StopCandidateException,
    ValueError,
)


def _chunk_text(chunk) -> str:
    # The last streamed chunk may carry only a finish reason and no parts
    if not chunk.candidates:
        return ""
    content = chunk.candidates[0].content
    return "".join(part.text for part in content.parts if part.text)


class GeminiClient:
    """
    The only code that talks to the generative service.

    Text, JSON-schema and multimodal requests go through google-generativeai;
    speech synthesis and image generation go straight to the REST API.
    Every failure surfaces as a ProviderError.
    """

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        if not settings.gemini_api_key:
            logger.warning("GEMINI_API_KEY environment variable is not set")
        genai.configure(api_key=settings.gemini_api_key)
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=settings.request_timeout)

    @property
    def _request_options(self) -> Dict[str, Any]:
        return {"timeout": self.settings.request_timeout}

    def _model(self, request: GeminiRequest) -> genai.GenerativeModel:
        if request.kind is not RequestKind.TEXT:
            raise ValueError(f"{request.kind} requests do not use the text model")
        generation_config = None
        if request.response_schema is not None:
            generation_config = {
                "response_mime_type": "application/json",
                "response_schema": request.response_schema,
            }
        return genai.GenerativeModel(self.settings.text_model, generation_config=generation_config)

    async def generate_text(self, request: GeminiRequest) -> str:
        model = self._model(request)
        try:
            response = await model.generate_content_async(request.contents, request_options=self._request_options)
            text = response.text
        except _SDK_FAILURES as e:
            raise ProviderError(f"Gemini request failed: {e}") from e
        return text.strip()

    async def generate_json(self, request: GeminiRequest) -> Dict[str, Any]:
        text = await self.generate_text(request)
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            m = re.search(r"\{.*\}", text, re.S)
            if not m:
                raise ProviderError(f"Gemini returned non-JSON output: {text[:200]}")
            try:
                data = json.loads(m.group(0))
            except json.JSONDecodeError as e:
                raise ProviderError(f"Gemini returned malformed JSON: {e}") from e
        if not isinstance(data, dict):
            raise ProviderError(f"Expected a JSON object, got {type(data).__name__}")
        return data

    async def stream_text(self, request: GeminiRequest) -> AsyncIterator[str]:
        model = self._model(request)
        try:
            response = await model.generate_content_async(
                request.contents, stream=True, request_options=self._request_options
            )
            async for chunk in response:
                text = _chunk_text(chunk)
                if text:
                    yield text
        except _SDK_FAILURES as e:
            raise ProviderError(f"Gemini stream failed: {e}") from e

    async def synthesize_speech(self, request: GeminiRequest) -> str:
        """Returns base64 raw PCM16 samples (24 kHz mono)."""
        payload = {"contents": request.contents, "generationConfig": request.generation_config}
        data = await self._post(self.settings.tts_model, "generateContent", payload)
        try:
            return data["candidates"][0]["content"]["parts"][0]["inlineData"]["data"]
        except (KeyError, IndexError, TypeError):
            logger.warning(f"Unexpected speech response structure: {json.dumps(data)[:500]}")
            raise ProviderError("Speech response contained no audio")

    async def generate_image(self, request: GeminiRequest) -> str:
        """Returns a base64 encoded PNG."""
        payload = {"instances": [{"prompt": request.prompt}], "parameters": request.generation_config}
        data = await self._post(self.settings.image_model, "predict", payload)
        try:
            return data["predictions"][0]["bytesBase64Encoded"]
        except (KeyError, IndexError, TypeError):
            logger.warning(f"Unexpected image response structure: {json.dumps(data)[:500]}")
            raise ProviderError("Image response contained no image")

    async def _post(self, model: str, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.settings.gemini_api_base}/models/{model}:{method}"
        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": self.settings.gemini_api_key,
        }
        try:
            response = await self._http.post(url, json=payload, headers=headers, timeout=self.settings.request_timeout)
        except httpx.RequestError as e:
            raise ProviderError(f"HTTP Request error: {e}") from e

        if response.status_code != 200:
            raise ProviderError(
                f"Gemini API Error {response.status_code}: {response.text}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"Gemini API returned invalid JSON: {e}") from e

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
