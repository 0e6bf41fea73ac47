import asyncio
import logging
from typing import Optional

from companion.errors import PreconditionError
from companion.models.schemas import DayPlan, PlannerView
from companion.services.location import LocationProvider
from companion.services.prompts import build_day_plan_request, build_summary_image_request
from companion.services.state import Feature, FeatureOrchestrator, PlannerState, StateChannel
from companion.utils.image import png_data_uri

logger = logging.getLogger(__name__)

PLAN_ERROR = "Sorry, I couldn't create a plan. Please try again."


class PlannerOrchestrator(FeatureOrchestrator):
    """
    Day plan generation.

    The plan is the primary result. The summary collage is a side task started
    once the plan is in; it has its own status and can fail without the plan
    being touched.
    """

    feature = Feature.PLANNER

    def __init__(self, client, location: LocationProvider, channel: StateChannel, state: Optional[PlannerState] = None):
        super().__init__(client, channel)
        self.location = location
        self.state = state or PlannerState()

    async def generate(self, preferences: Optional[str] = None) -> bool:
        state = self.state
        if state.loading:
            return False
        if preferences is not None:
            state.preferences = preferences

        try:
            request = build_day_plan_request(state.preferences, self.location.location)
        except PreconditionError as e:
            state.error = e.user_message
            self._publish()
            return False

        state.loading = True
        state.error = None
        state.image_task.cancel()
        state.plan = None
        state.summary_image = None
        self._publish()

        try:
            data = await self.client.generate_json(request)
            plan = DayPlan.model_validate(data)
        except Exception:
            logger.exception("Failed to generate plan")
            state.error = PLAN_ERROR
            return False
        finally:
            state.loading = False
            self._publish()

        state.plan = plan
        state.image_task.begin(asyncio.create_task(self._generate_summary_image(plan)))
        self._publish()
        return True

    async def _generate_summary_image(self, plan: DayPlan) -> None:
        state = self.state
        try:
            image = await self.client.generate_image(build_summary_image_request(plan))
        except Exception as e:
            logger.warning(f"Failed to generate summary image: {e}")
            if state.plan is plan:
                state.image_task.fail(str(e))
                self._publish()
            return

        if state.plan is not plan:
            return
        state.summary_image = png_data_uri(image)
        state.image_task.done()
        self._publish()

    def reset(self) -> bool:
        """Discard the current plan to start a new one."""
        state = self.state
        if state.loading:
            return False
        state.image_task.cancel()
        state.plan = None
        state.summary_image = None
        state.error = None
        self._publish()
        return True

    def to_view(self, session_id: str) -> PlannerView:
        state = self.state
        return PlannerView(
            sessionId=session_id,
            plan=state.plan,
            summaryImage=state.summary_image,
            loading=state.loading,
            generatingImage=state.generating_image,
            error=state.error,
        )

    def close(self) -> None:
        self.state.image_task.cancel()
