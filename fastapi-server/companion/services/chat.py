import logging
from typing import Optional

from companion.models.schemas import ChatMessage, ChatView
from companion.services.location import LocationProvider
from companion.services.prompts import build_chat_request
from companion.services.state import ChatState, Feature, FeatureOrchestrator, StateChannel
from companion.utils.image import InlineImage

logger = logging.getLogger(__name__)

ERROR_REPLY = "Sorry, I encountered an error. Please try again."


class ChatOrchestrator(FeatureOrchestrator):
    """
    Assistant conversation with optional image attachments.

    Idle -> Sending -> StreamingResponse -> Idle. The user message is shown
    before the request goes out; streamed chunks are appended in arrival
    order to one model placeholder; the provider history only grows once a
    stream has completed.
    """

    feature = Feature.ASSISTANT

    def __init__(self, client, location: LocationProvider, channel: StateChannel, state: Optional[ChatState] = None):
        super().__init__(client, channel)
        self.location = location
        self.state = state or ChatState()

    def set_input(self, text: str) -> None:
        self.state.input = text

    def attach_image(self, image: Optional[InlineImage]) -> None:
        self.state.image = image

    async def send(self, text: Optional[str] = None, image: Optional[InlineImage] = None) -> bool:
        """Send `text`/`image`, or whatever is in the input buffers when no text is given."""
        state = self.state
        if state.loading:
            return False
        if text is None:
            text, image = state.input, state.image
        if not text.strip() and image is None:
            return False

        state.loading = True
        state.messages.append(ChatMessage(role="user", text=text, image=image.data_uri if image else None))
        state.input = ""
        state.image = None
        self._publish()

        placeholder: Optional[ChatMessage] = None
        try:
            request = build_chat_request(text, image, self.location.location, state.history)
            placeholder = ChatMessage(role="model", text="")
            state.messages.append(placeholder)
            self._publish()

            reply = ""
            async for chunk in self.client.stream_text(request):
                reply += chunk
                placeholder.text = reply
                self._publish()

            user_parts = [{"text": text}]
            if image is not None:
                user_parts.insert(0, image.to_part())
            state.history.extend([
                {"role": "user", "parts": user_parts},
                {"role": "model", "parts": [{"text": reply}]},
            ])
            return True
        except Exception:
            logger.exception("Error sending chat message")
            if placeholder is not None and not placeholder.text:
                placeholder.text = ERROR_REPLY
            else:
                state.messages.append(ChatMessage(role="model", text=ERROR_REPLY))
            return False
        finally:
            state.loading = False
            self._publish()

    def to_view(self, session_id: str) -> ChatView:
        state = self.state
        return ChatView(
            sessionId=session_id,
            messages=[m.model_copy() for m in state.messages],
            loading=state.loading,
            historyLength=len(state.history),
        )
