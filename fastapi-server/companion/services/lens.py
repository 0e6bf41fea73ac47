import logging
from typing import Optional

from companion.errors import PreconditionError
from companion.models.schemas import LensView
from companion.services.location import LocationProvider
from companion.services.prompts import build_image_analysis_request
from companion.services.state import Feature, FeatureOrchestrator, LensState, StateChannel
from companion.utils.image import InlineImage

logger = logging.getLogger(__name__)

ANALYSIS_ERROR = "Sorry, I couldn't analyze the image. Please try again."


class LensOrchestrator(FeatureOrchestrator):
    feature = Feature.LENS

    def __init__(self, client, location: LocationProvider, channel: StateChannel, state: Optional[LensState] = None):
        super().__init__(client, channel)
        self.location = location
        self.state = state or LensState()

    def select_image(self, image: InlineImage) -> None:
        state = self.state
        state.image = image
        state.analysis = ""
        state.error = None
        self._publish()

    async def analyze(self, prompt: Optional[str] = None) -> bool:
        state = self.state
        if state.loading:
            return False
        if prompt is not None:
            state.prompt = prompt

        try:
            request = build_image_analysis_request(state.image, state.prompt, self.location.location)
        except PreconditionError as e:
            state.error = e.user_message
            self._publish()
            return False

        state.loading = True
        state.error = None
        state.analysis = ""
        self._publish()
        try:
            state.analysis = await self.client.generate_text(request)
            return True
        except Exception:
            logger.exception("Failed to analyze image")
            state.error = ANALYSIS_ERROR
            return False
        finally:
            state.loading = False
            self._publish()

    def to_view(self, session_id: str) -> LensView:
        state = self.state
        return LensView(sessionId=session_id, analysis=state.analysis, loading=state.loading, error=state.error)
