import logging
import uuid
from typing import Dict, Optional, Union

from companion.config import Settings
from companion.services.chat import ChatOrchestrator
from companion.services.emergency import EmergencyOrchestrator
from companion.services.home import HomeOrchestrator
from companion.services.lens import LensOrchestrator
from companion.services.location import LocationProvider
from companion.services.planner import PlannerOrchestrator
from companion.services.state import Feature, SessionResources, StateChannel
from companion.services.translator import TranslatorOrchestrator

logger = logging.getLogger(__name__)

Orchestrator = Union[
    HomeOrchestrator,
    ChatOrchestrator,
    PlannerOrchestrator,
    LensOrchestrator,
    TranslatorOrchestrator,
    EmergencyOrchestrator,
]


class AppSession:
    """
    One running app: shared location, the active-feature selector and the
    state of the mounted feature. Navigating away from a feature destroys
    its state.
    """

    def __init__(self, client, settings: Settings, session_id: Optional[str] = None):
        self.id = session_id or str(uuid.uuid4())
        self.client = client
        self.settings = settings
        self.location = LocationProvider()
        self.channel = StateChannel()
        self.resources = SessionResources(settings)
        self.active_feature = Feature.HOME
        self._mounted: Orchestrator = self._mount(Feature.HOME)

    def _mount(self, feature: Feature) -> Orchestrator:
        if feature is Feature.HOME:
            return HomeOrchestrator(self.client, self.location, self.channel)
        if feature is Feature.ASSISTANT:
            return ChatOrchestrator(self.client, self.location, self.channel)
        if feature is Feature.PLANNER:
            return PlannerOrchestrator(self.client, self.location, self.channel)
        if feature is Feature.LENS:
            return LensOrchestrator(self.client, self.location, self.channel)
        if feature is Feature.TRANSLATOR:
            return TranslatorOrchestrator(self.client, self.resources, self.channel, self.settings)
        if feature is Feature.EMERGENCY:
            return EmergencyOrchestrator(
                self.client, self.location, self.channel, self.settings.emergency_contact_number
            )
        raise ValueError(f"Unknown feature: {feature}")

    def navigate(self, feature: Feature) -> Orchestrator:
        if feature is self.active_feature:
            return self._mounted
        logger.info(f"Session {self.id}: {self.active_feature.value} -> {feature.value}")
        self._mounted.close()
        self.active_feature = feature
        self._mounted = self._mount(feature)
        return self._mounted

    def home(self) -> HomeOrchestrator:
        return self.navigate(Feature.HOME)

    def chat(self) -> ChatOrchestrator:
        return self.navigate(Feature.ASSISTANT)

    def planner(self) -> PlannerOrchestrator:
        return self.navigate(Feature.PLANNER)

    def lens(self) -> LensOrchestrator:
        return self.navigate(Feature.LENS)

    def translator(self) -> TranslatorOrchestrator:
        return self.navigate(Feature.TRANSLATOR)

    def emergency(self) -> EmergencyOrchestrator:
        return self.navigate(Feature.EMERGENCY)

    def close(self) -> None:
        self._mounted.close()
        self.resources.close()


class SessionRegistry:
    """In-memory sessions; nothing survives a restart."""

    def __init__(self, client, settings: Settings):
        self.client = client
        self.settings = settings
        self._sessions: Dict[str, AppSession] = {}

    def create(self) -> AppSession:
        session = AppSession(self.client, self.settings)
        self._sessions[session.id] = session
        logger.info(f"Created session {session.id}")
        return session

    def get(self, session_id: str) -> Optional[AppSession]:
        return self._sessions.get(session_id)

    def close(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.close()
        logger.info(f"Closed session {session_id}")
        return True

    def close_all(self) -> None:
        for session_id in list(self._sessions):
            self.close(session_id)

    def __len__(self) -> int:
        return len(self._sessions)
