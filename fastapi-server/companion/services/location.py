import logging
from typing import Awaitable, Callable, List, Optional, Tuple

from companion.models.schemas import LocationInfo

logger = logging.getLogger(__name__)

LocationListener = Callable[["LocationProvider"], None]
FixSource = Callable[[], Awaitable[Tuple[float, float]]]


class LocationProvider:
    """
    One-shot geolocation for an app session.

    Starts out loading. The first fix or failure settles it; after that the
    captured coordinates never change for the life of the session.
    """

    def __init__(self):
        self.location: Optional[LocationInfo] = None
        self.error: Optional[str] = None
        self.loading = True
        self._listeners: List[LocationListener] = []

    @property
    def settled(self) -> bool:
        return not self.loading

    def subscribe(self, listener: LocationListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: LocationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def report(self, latitude: float, longitude: float) -> bool:
        if self.settled:
            logger.info("Location already settled, ignoring new fix")
            return False
        self.location = LocationInfo(latitude=latitude, longitude=longitude)
        self.loading = False
        self._notify()
        return True

    def fail(self, message: str) -> bool:
        if self.settled:
            return False
        self.error = message
        self.loading = False
        self._notify()
        return True

    def unsupported(self) -> bool:
        return self.fail("Geolocation is not supported by your device")

    async def acquire(self, source: Optional[FixSource]) -> Optional[LocationInfo]:
        """Run a fix source once; later calls return the settled value."""
        if self.settled:
            return self.location
        if source is None:
            self.unsupported()
            return None
        try:
            latitude, longitude = await source()
        except Exception as e:
            logger.error(f"Geolocation failed: {e}")
            self.fail(str(e) or "Unable to determine location")
            return None
        self.report(latitude, longitude)
        return self.location

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
