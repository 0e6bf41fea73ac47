import asyncio
import io
import logging
from enum import Enum
from typing import Callable, List, Optional

import speech_recognition as sr

from companion.errors import CapabilityUnavailableError

logger = logging.getLogger(__name__)

# Constants
PAUSE_THRESHOLD = 0.8  # Seconds of silence that ends a phrase
LISTEN_TIMEOUT = 10
PHRASE_TIME_LIMIT = 15


class ListeningState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    RESULT = "result"
    ERROR = "error"


SpeechListener = Callable[[ListeningState, Optional[str]], None]


class SpeechSource:
    """Where one listening session reads its audio from."""

    def check_available(self) -> None:
        pass

    def capture(self, recognizer: sr.Recognizer) -> sr.AudioData:
        raise NotImplementedError


class AudioFileSource(SpeechSource):
    """A clip recorded on the phone and uploaded (WAV, AIFF or FLAC)."""

    def __init__(self, data: bytes):
        self.data = data

    def capture(self, recognizer: sr.Recognizer) -> sr.AudioData:
        with sr.AudioFile(io.BytesIO(self.data)) as source:
            return recognizer.record(source)


class MicrophoneSource(SpeechSource):
    """The host microphone. Needs PyAudio."""

    def __init__(self, timeout: float = LISTEN_TIMEOUT, phrase_time_limit: float = PHRASE_TIME_LIMIT):
        self.timeout = timeout
        self.phrase_time_limit = phrase_time_limit

    def check_available(self) -> None:
        try:
            sr.Microphone()
        except (AttributeError, OSError) as e:
            raise CapabilityUnavailableError(
                f"Microphone unavailable: {e}",
                user_message="Speech recognition is not supported on this device.",
            ) from e

    def capture(self, recognizer: sr.Recognizer) -> sr.AudioData:
        with sr.Microphone() as source:
            recognizer.adjust_for_ambient_noise(source, duration=0.5)
            return recognizer.listen(source, timeout=self.timeout, phrase_time_limit=self.phrase_time_limit)


class SpeechRecognizer:
    """
    Listening session state machine: IDLE -> LISTENING -> RESULT | ERROR -> IDLE.

    Exactly one final transcript is produced per session. Starting while a
    session is running is a no-op; stopping bumps the session token so a
    late result from the abandoned capture is dropped.
    """

    def __init__(self, language: str = "en-US", recognizer: Optional[sr.Recognizer] = None):
        self.recognizer = recognizer or sr.Recognizer()
        self.recognizer.pause_threshold = PAUSE_THRESHOLD
        self.language = language
        self.state = ListeningState.IDLE
        self.transcript: Optional[str] = None
        self.error: Optional[str] = None
        self._session = 0
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[SpeechListener] = []

    @property
    def listening(self) -> bool:
        return self.state is ListeningState.LISTENING

    def subscribe(self, listener: SpeechListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def start(self, source: SpeechSource) -> Optional[asyncio.Task]:
        if self.listening:
            logger.info("Listening session already active, ignoring start")
            return None
        source.check_available()

        self._session += 1
        self.transcript = None
        self.error = None
        self._transition(ListeningState.LISTENING)
        self._task = asyncio.create_task(self._run(self._session, source))
        return self._task

    def stop(self) -> None:
        if not self.listening:
            return
        self._session += 1
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._transition(ListeningState.IDLE)

    async def _run(self, session: int, source: SpeechSource) -> Optional[str]:
        try:
            audio = await asyncio.to_thread(source.capture, self.recognizer)
            text = await asyncio.to_thread(self.recognizer.recognize_google, audio, language=self.language)
        except sr.WaitTimeoutError:
            self._finish(session, error="no-speech")
        except sr.UnknownValueError:
            self._finish(session, error="no-match")
        except sr.RequestError as e:
            logger.error(f"Speech service request failed: {e}")
            self._finish(session, error="network")
        except ValueError as e:
            # sr.AudioFile rejects unreadable clips with ValueError
            logger.error(f"Could not read audio for recognition: {e}")
            self._finish(session, error="audio-capture")
        except Exception:
            # e.g. PyAudio OSError mid-capture; the session still has to end
            logger.exception("Audio capture failed")
            self._finish(session, error="audio-capture")
        else:
            self._finish(session, transcript=text)

        if session != self._session:
            return None
        return self.transcript

    def _finish(self, session: int, transcript: Optional[str] = None, error: Optional[str] = None) -> None:
        if session != self._session:
            logger.info("Dropping result from a stopped listening session")
            return
        self._task = None
        if error is not None:
            self.error = error
            self._transition(ListeningState.ERROR, error)
        else:
            self.transcript = transcript
            self._transition(ListeningState.RESULT, transcript)
        self._transition(ListeningState.IDLE)

    def _transition(self, state: ListeningState, payload: Optional[str] = None) -> None:
        self.state = state
        for listener in list(self._listeners):
            listener(state, payload)


def create_speech_source(kind: str, data: Optional[bytes] = None) -> SpeechSource:
    if kind == "microphone":
        return MicrophoneSource()
    if kind == "upload":
        if not data:
            raise ValueError("An uploaded clip is required for upload speech input")
        return AudioFileSource(data)
    raise ValueError(f"Unknown speech input: {kind}")
