import asyncio
import logging
from typing import Optional

from companion.config import Settings
from companion.errors import CapabilityUnavailableError
from companion.models.schemas import TranslationStyle, TranslatorView
from companion.services.prompts import build_speech_request, build_translation_request
from companion.services.state import (
    CachedAudio,
    Feature,
    FeatureOrchestrator,
    SessionResources,
    StateChannel,
    TranslationResult,
    TranslatorState,
)
from companion.utils.audio import AudioBuffer, decode_audio
from companion.utils.speech import ListeningState, MicrophoneSource, SpeechSource

logger = logging.getLogger(__name__)

LANGUAGES = [
    "Spanish", "French", "German", "Italian", "Japanese", "Chinese", "Korean", "Russian", "Portuguese", "Arabic",
]

TRANSLATION_ERROR = "Sorry, translation failed. Please try again."
PLAYBACK_ERROR = "Could not play audio."
SPEECH_TRANSLATION_ERROR = "Could not translate the speech."


class TranslatorOrchestrator(FeatureOrchestrator):
    """
    Text and voice translation with spoken output.

    Text mode pre-fetches speech for each new translation in the background.
    The cached audio belongs to one TranslationResult and is only replayed
    when the text to speak is exactly that result's translated text; a new
    translation replaces the result and with it the cache.
    """

    feature = Feature.TRANSLATOR

    def __init__(
        self,
        client,
        resources: SessionResources,
        channel: StateChannel,
        settings: Settings,
        state: Optional[TranslatorState] = None,
    ):
        super().__init__(client, channel)
        self.resources = resources
        self.settings = settings
        self.state = state or TranslatorState()
        self._unsubscribe_speech = None
        self._detect_speech_support()

    def _detect_speech_support(self) -> None:
        if self.settings.speech_input != "microphone":
            return
        try:
            MicrophoneSource().check_available()
        except CapabilityUnavailableError as e:
            logger.warning(e.message)
            self.state.speech_supported = False
            self.state.speech_error = e.user_message

    def set_mode(self, mode: str) -> None:
        if mode not in ("text", "voice"):
            raise ValueError(f"Unknown translator mode: {mode}")
        self.state.mode = mode
        self._publish()

    def set_target_language(self, language: str) -> None:
        if language not in LANGUAGES:
            raise ValueError(f"Unsupported language: {language}")
        self.state.target_language = language

    def set_style(self, style: Optional[TranslationStyle]) -> None:
        self.state.style = style

    async def translate(self, text: Optional[str] = None) -> bool:
        state = self.state
        if state.loading:
            return False
        if text is not None:
            state.input_text = text
        source_text = state.input_text
        if not source_text.strip():
            return False

        state.loading = True
        state.error = None
        state.prefetch.cancel()
        state.result = None
        self._publish()
        try:
            translated = await self.client.generate_text(
                build_translation_request(source_text, state.target_language, state.style)
            )
        except Exception:
            logger.exception("Translation failed")
            state.error = TRANSLATION_ERROR
            return False
        finally:
            state.loading = False
            self._publish()

        result = TranslationResult(source_text=source_text, translated_text=translated)
        state.result = result
        if translated:
            state.prefetch.begin(asyncio.create_task(self._prefetch_audio(result)))
        self._publish()
        return True

    async def _prefetch_audio(self, result: TranslationResult) -> None:
        state = self.state
        try:
            buffer = await self._synthesize(result.translated_text)
        except Exception as e:
            logger.warning(f"Audio pre-fetch failed: {e}")
            if state.result is result:
                state.prefetch.fail(str(e))
            return
        if state.result is not result:
            return
        if result.cached_audio is None:
            result.cached_audio = CachedAudio(text=result.translated_text, buffer=buffer)
        state.prefetch.done()
        self._publish()

    async def _synthesize(self, text: str) -> AudioBuffer:
        request = build_speech_request(text, self.settings.tts_voice)
        audio = await self.client.synthesize_speech(request)
        return decode_audio(audio, self.settings.audio_sample_rate, self.settings.audio_channels)

    async def speak(self, text: Optional[str] = None) -> Optional[AudioBuffer]:
        """Play `text`, or the current translation. Returns what was played."""
        state = self.state
        result = state.result
        if text is None:
            text = result.translated_text if result else ""
        if not text or state.speaking:
            return None

        state.speaking = True
        self._publish()
        try:
            buffer = result.audio_for(text) if result else None
            if buffer is None:
                state.error = None
                buffer = await self._synthesize(text)
                if result is not None and state.result is result and text == result.translated_text:
                    result.cached_audio = CachedAudio(text=text, buffer=buffer)
            await self.resources.audio_output().play(buffer)
            return buffer
        except CapabilityUnavailableError as e:
            logger.warning(e.message)
            state.error = e.user_message
            return None
        except Exception:
            logger.exception("Text-to-speech failed")
            state.error = PLAYBACK_ERROR
            return None
        finally:
            state.speaking = False
            self._publish()

    # Voice mode

    @property
    def listening(self) -> bool:
        recognizer = self.resources.speech_recognizer(create=False)
        return recognizer is not None and recognizer.listening

    def toggle_listening(self, source: SpeechSource) -> Optional[asyncio.Task]:
        """Start a listening session, or stop the running one."""
        state = self.state
        recognizer = self.resources.speech_recognizer()
        if recognizer.listening:
            recognizer.stop()
            return None
        if not state.speech_supported or state.loading:
            return None

        state.transcribed_text = ""
        state.voice_translated_text = ""
        state.speech_error = None
        if self._unsubscribe_speech is None:
            self._unsubscribe_speech = recognizer.subscribe(self._on_speech_event)
        try:
            listen_task = recognizer.start(source)
        except CapabilityUnavailableError as e:
            state.speech_supported = False
            state.speech_error = e.user_message
            self._publish()
            return None
        if listen_task is None:
            return None
        state.voice_task = asyncio.create_task(self._voice_session(listen_task))
        return state.voice_task

    async def listen_once(self, source: SpeechSource) -> None:
        task = self.toggle_listening(source)
        if task is not None:
            await task

    def _on_speech_event(self, event: ListeningState, payload: Optional[str]) -> None:
        if event is ListeningState.ERROR:
            self.state.speech_error = f"Speech error: {payload}"
        self._publish()

    async def _voice_session(self, listen_task: asyncio.Task) -> None:
        try:
            transcript = await listen_task
        except asyncio.CancelledError:
            if listen_task.cancelled():
                return
            raise
        if not transcript:
            return
        self.state.transcribed_text = transcript
        self._publish()
        await self.translate_speech(transcript)

    async def translate_speech(self, text: str) -> bool:
        state = self.state
        if state.loading:
            logger.info("Translation already in progress, dropping transcript")
            return False
        state.loading = True
        self._publish()
        try:
            translated = await self.client.generate_text(
                build_translation_request(text, state.target_language, state.style)
            )
        except Exception:
            logger.exception("Speech translation failed")
            state.speech_error = SPEECH_TRANSLATION_ERROR
            return False
        finally:
            state.loading = False
            self._publish()

        state.voice_translated_text = translated
        self._publish()
        await self.speak(translated)
        return True

    def to_view(self, session_id: str) -> TranslatorView:
        state = self.state
        result = state.result
        return TranslatorView(
            sessionId=session_id,
            targetLanguage=state.target_language,
            style=state.style,
            sourceText=result.source_text if result else state.input_text,
            translatedText=result.translated_text if result else "",
            audioCached=bool(result and result.audio_for(result.translated_text) is not None),
            transcribedText=state.transcribed_text,
            voiceTranslatedText=state.voice_translated_text,
            loading=state.loading,
            speaking=state.speaking,
            listening=self.listening,
            error=state.error,
            speechError=state.speech_error,
        )

    def close(self) -> None:
        state = self.state
        state.prefetch.cancel()
        if state.voice_task is not None and not state.voice_task.done():
            state.voice_task.cancel()
        state.voice_task = None
        if self._unsubscribe_speech is not None:
            self._unsubscribe_speech()
            self._unsubscribe_speech = None
        recognizer = self.resources.speech_recognizer(create=False)
        if recognizer is not None:
            recognizer.stop()
