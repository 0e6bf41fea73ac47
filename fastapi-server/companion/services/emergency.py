import logging
from typing import Optional

from companion.errors import PreconditionError
from companion.models.schemas import EmergencyInfo, EmergencyView
from companion.services.location import LocationProvider
from companion.services.prompts import build_emergency_info_request, build_translation_request
from companion.services.state import EmergencyState, Feature, FeatureOrchestrator, StateChannel
from companion.utils.telephony import dial_uri

logger = logging.getLogger(__name__)

EMERGENCY_PHRASES = [
    "I need help.",
    "Where is the nearest hospital?",
    "Call the police.",
    "I am lost.",
    "I need a doctor.",
]

# TODO: resolve the phrase-book target from the session location through a
# locale lookup service; the model currently has to guess what "local" means.
LOCAL_LANGUAGE = "local language"

INFO_ERROR = "Could not fetch local emergency information."
PHRASE_ERROR = "Translation failed."


class EmergencyOrchestrator(FeatureOrchestrator):
    """Local emergency numbers, canned phrase translations and the help line."""

    feature = Feature.EMERGENCY

    def __init__(
        self,
        client,
        location: LocationProvider,
        channel: StateChannel,
        contact_number: str,
        state: Optional[EmergencyState] = None,
    ):
        super().__init__(client, channel)
        self.location = location
        self.contact_number = contact_number
        self.state = state or EmergencyState()

    async def fetch_info(self) -> bool:
        state = self.state
        if state.loading_info:
            return False

        try:
            request = build_emergency_info_request(self.location.location)
        except PreconditionError as e:
            logger.warning(e.message)
            state.info = None
            state.info_error = e.user_message
            self._publish()
            return False

        state.loading_info = True
        state.info_error = None
        self._publish()
        try:
            data = await self.client.generate_json(request)
            state.info = EmergencyInfo.model_validate(data)
            return True
        except Exception:
            logger.exception("Failed to fetch emergency info")
            state.info = None
            state.info_error = INFO_ERROR
            return False
        finally:
            state.loading_info = False
            self._publish()

    async def translate_phrase(self, phrase: str) -> bool:
        if phrase not in EMERGENCY_PHRASES:
            raise ValueError(f"Not an emergency phrase: {phrase!r}")
        state = self.state
        if state.translating:
            return False

        state.translating = True
        state.translated_phrase = None
        self._publish()
        try:
            translated = await self.client.generate_text(build_translation_request(phrase, LOCAL_LANGUAGE))
            state.translated_phrase = f'"{phrase}"\n\n{translated}'
            return True
        except Exception:
            logger.exception("Failed to translate emergency phrase")
            state.translated_phrase = PHRASE_ERROR
            return False
        finally:
            state.translating = False
            self._publish()

    def call_intent(self) -> str:
        return dial_uri(self.contact_number)

    def to_view(self, session_id: str) -> EmergencyView:
        state = self.state
        return EmergencyView(
            sessionId=session_id,
            info=state.info,
            loadingInfo=state.loading_info,
            infoError=state.info_error,
            translatedPhrase=state.translated_phrase,
            translating=state.translating,
        )
