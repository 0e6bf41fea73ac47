import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from companion.config import Settings
from companion.models.schemas import (
    ChatMessage,
    DayPlan,
    EmergencyInfo,
    HomeData,
    TranslationStyle,
)
from companion.utils.audio import AudioBuffer, AudioOutput, create_audio_output
from companion.utils.image import InlineImage
from companion.utils.speech import SpeechRecognizer

logger = logging.getLogger(__name__)

GREETING = "Hello! How can I help you plan your trip today?"


class Feature(str, Enum):
    HOME = "home"
    ASSISTANT = "assistant"
    PLANNER = "planner"
    LENS = "lens"
    TRANSLATOR = "translator"
    EMERGENCY = "emergency"


Subscriber = Callable[[Feature], None]


class StateChannel:
    """Re-render notifications. Subscribers run synchronously, in publish order."""

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def publish(self, feature: Feature) -> None:
        for subscriber in list(self._subscribers):
            subscriber(feature)


class SideTaskStatus(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SideTask:
    """Best-effort work hanging off a primary result. Its failure never touches the primary."""

    status: SideTaskStatus = SideTaskStatus.IDLE
    error: Optional[str] = None
    task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self.status is SideTaskStatus.PENDING

    def begin(self, task: asyncio.Task) -> None:
        self.status = SideTaskStatus.PENDING
        self.error = None
        self.task = task

    def done(self) -> None:
        self.status = SideTaskStatus.DONE
        self.task = None

    def fail(self, error: str) -> None:
        self.status = SideTaskStatus.FAILED
        self.error = error
        self.task = None

    def cancel(self) -> None:
        if self.task is not None and not self.task.done():
            self.task.cancel()
        self.status = SideTaskStatus.IDLE
        self.error = None
        self.task = None

    async def wait(self) -> None:
        if self.task is not None:
            await asyncio.gather(self.task, return_exceptions=True)


@dataclass
class HomeState:
    data: Optional[HomeData] = None
    requested: bool = False
    loading: bool = False
    error: Optional[str] = None


@dataclass
class ChatState:
    messages: List[ChatMessage] = field(default_factory=lambda: [ChatMessage(role="model", text=GREETING)])
    # provider-facing turns, one user/model pair per completed exchange
    history: List[Dict[str, Any]] = field(default_factory=list)
    input: str = ""
    image: Optional[InlineImage] = None
    loading: bool = False


@dataclass
class PlannerState:
    preferences: str = ""
    plan: Optional[DayPlan] = None
    summary_image: Optional[str] = None
    image_task: SideTask = field(default_factory=SideTask)
    loading: bool = False
    error: Optional[str] = None

    @property
    def generating_image(self) -> bool:
        return self.image_task.pending


@dataclass
class LensState:
    image: Optional[InlineImage] = None
    prompt: str = ""
    analysis: str = ""
    loading: bool = False
    error: Optional[str] = None


@dataclass
class CachedAudio:
    text: str
    buffer: AudioBuffer


@dataclass
class TranslationResult:
    source_text: str
    translated_text: str
    cached_audio: Optional[CachedAudio] = None

    def audio_for(self, text: str) -> Optional[AudioBuffer]:
        """Cached audio, only if it was synthesized for exactly this text."""
        cached = self.cached_audio
        if cached is None or text != self.translated_text or cached.text != text:
            return None
        return cached.buffer


@dataclass
class TranslatorState:
    mode: str = "text"
    target_language: str = "Spanish"
    style: Optional[TranslationStyle] = TranslationStyle.FORMAL
    input_text: str = ""
    result: Optional[TranslationResult] = None
    prefetch: SideTask = field(default_factory=SideTask)
    loading: bool = False
    speaking: bool = False
    error: Optional[str] = None

    # voice mode
    transcribed_text: str = ""
    voice_translated_text: str = ""
    speech_error: Optional[str] = None
    speech_supported: bool = True
    voice_task: Optional[asyncio.Task] = None


@dataclass
class EmergencyState:
    info: Optional[EmergencyInfo] = None
    loading_info: bool = False
    info_error: Optional[str] = None
    translated_phrase: Optional[str] = None
    translating: bool = False


class SessionResources:
    """
    Process-scoped resources of one app session: the audio output context and
    the speech recognizer. Created lazily on first use, then reused.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._audio_output: Optional[AudioOutput] = None
        self._speech_recognizer: Optional[SpeechRecognizer] = None

    def audio_output(self) -> AudioOutput:
        if self._audio_output is None:
            self._audio_output = create_audio_output(self.settings.audio_output)
            logger.info(f"Created {type(self._audio_output).__name__}")
        return self._audio_output

    def speech_recognizer(self, create: bool = True) -> Optional[SpeechRecognizer]:
        if self._speech_recognizer is None and create:
            self._speech_recognizer = SpeechRecognizer(language=self.settings.speech_language)
        return self._speech_recognizer

    def close(self) -> None:
        if self._speech_recognizer is not None:
            self._speech_recognizer.stop()
        if self._audio_output is not None:
            self._audio_output.close()


class FeatureOrchestrator:
    feature: Feature

    def __init__(self, client, channel: StateChannel):
        self.client = client
        self.channel = channel

    def _publish(self) -> None:
        self.channel.publish(self.feature)

    def close(self) -> None:
        pass
