import asyncio
import logging
from typing import Optional

from companion.models.schemas import HomeData, HomeView
from companion.services.location import LocationProvider
from companion.services.prompts import build_home_request
from companion.services.state import Feature, FeatureOrchestrator, HomeState, StateChannel

logger = logging.getLogger(__name__)

HOME_ERROR = "Could not load local information."


class HomeOrchestrator(FeatureOrchestrator):
    """Weather, tip and city for the current location. Requested once, never retried."""

    feature = Feature.HOME

    def __init__(self, client, location: LocationProvider, channel: StateChannel, state: Optional[HomeState] = None):
        super().__init__(client, channel)
        self.location = location
        self.state = state or HomeState()
        self._pending: Optional[asyncio.Task] = None
        location.subscribe(self._on_location)

    def _on_location(self, provider: LocationProvider) -> None:
        if provider.location is None:
            self._publish()
            return
        try:
            self._pending = asyncio.get_running_loop().create_task(self.sync())
        except RuntimeError:
            # no loop yet; the next sync() call picks it up
            pass

    async def sync(self) -> None:
        state = self.state
        if self._pending is not None and self._pending is not asyncio.current_task():
            await asyncio.gather(self._pending, return_exceptions=True)
        location = self.location.location
        if location is None or state.requested:
            return

        state.requested = True
        state.loading = True
        state.error = None
        self._publish()
        try:
            data = await self.client.generate_json(build_home_request(location))
            state.data = HomeData.model_validate(data)
        except Exception:
            logger.exception("Failed to load home data")
            state.error = HOME_ERROR
        finally:
            state.loading = False
            self._publish()

    @property
    def status(self) -> str:
        provider = self.location
        if provider.loading:
            return "loading"
        if provider.error:
            return "location_error"
        if provider.location is None:
            return "unavailable"
        if self.state.data is not None:
            return "ready"
        if self.state.error:
            return "error"
        return "loading"

    def to_view(self, session_id: str) -> HomeView:
        error = self.location.error or self.state.error
        return HomeView(sessionId=session_id, status=self.status, data=self.state.data, error=error)

    def close(self) -> None:
        self.location.unsubscribe(self._on_location)
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
