"""
Request builders for every feature endpoint.

Pure functions: given the feature input, the optional location and the
optional conversation history they return a `GeminiRequest`. Nothing here
performs I/O, so the exact prompt, schema and modality of every request can
be asserted in tests without a client.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from companion.errors import ImageRequiredError, LocationRequiredError, TextRequiredError
from companion.models.schemas import DayPlan, LocationInfo, TranslationStyle
from companion.utils.image import InlineImage

Content = Dict[str, Any]

DEFAULT_LENS_PROMPT = "What is this? Describe what you see and identify its name if it's a known place."
SUMMARY_IMAGE_ACTIVITIES = 4


class RequestKind(Enum):
    TEXT = "text"
    SPEECH = "speech"
    IMAGE = "image"


@dataclass(frozen=True)
class GeminiRequest:
    kind: RequestKind
    contents: List[Content]
    response_schema: Optional[Dict[str, Any]] = None
    generation_config: Dict[str, Any] = field(default_factory=dict)

    @property
    def prompt(self) -> str:
        """Text of the newest turn, i.e. what this request adds."""
        parts = self.contents[-1]["parts"]
        return "".join(part["text"] for part in parts if "text" in part)

    @property
    def parts(self) -> List[Dict[str, Any]]:
        return self.contents[-1]["parts"]


# Structured output schemas

HOME_DATA_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "weather": {"type": "STRING", "description": "A brief description of the current weather."},
        "tip": {"type": "STRING", "description": "A useful travel tip for a tourist in this location."},
        "city": {"type": "STRING", "description": "The name of the city for the given coordinates."},
    },
    "required": ["weather", "tip", "city"],
}

DAY_PLAN_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "title": {"type": "STRING"},
        "activities": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "time": {"type": "STRING"},
                    "description": {"type": "STRING"},
                    "details": {"type": "STRING"},
                },
                "required": ["time", "description"],
            },
        },
    },
    "required": ["title", "activities"],
}

EMERGENCY_INFO_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "police": {"type": "STRING"},
        "ambulance": {"type": "STRING"},
        "fire": {"type": "STRING"},
        "hospitalName": {"type": "STRING"},
        "hospitalAddress": {"type": "STRING"},
    },
    "required": ["police", "ambulance", "fire", "hospitalName", "hospitalAddress"],
}


def location_clause(location: LocationInfo) -> str:
    return f"latitude: {location.latitude}, longitude: {location.longitude}"


def _location_context(location: Optional[LocationInfo]) -> str:
    if location is None:
        return ""
    return f"\nFor context, my current location is {location_clause(location)}."


def _require_location(location: Optional[LocationInfo], what: str) -> LocationInfo:
    if location is None:
        raise LocationRequiredError(f"Location is required to get {what}.")
    return location


def _user_turn(text: str, image: Optional[InlineImage] = None) -> Content:
    parts: List[Dict[str, Any]] = [{"text": text}]
    if image is not None:
        # image goes before the text
        parts.insert(0, image.to_part())
    return {"role": "user", "parts": parts}


def build_home_request(location: Optional[LocationInfo]) -> GeminiRequest:
    location = _require_location(location, "home data")
    prompt = (
        f"Based on the location {location_clause(location)}, provide the current weather, "
        "a useful travel tip for a tourist, and the city name."
    )
    return GeminiRequest(RequestKind.TEXT, [_user_turn(prompt)], response_schema=HOME_DATA_SCHEMA)


def build_chat_request(
    text: str,
    image: Optional[InlineImage] = None,
    location: Optional[LocationInfo] = None,
    history: Optional[Sequence[Content]] = None,
) -> GeminiRequest:
    if not text.strip() and image is None:
        raise TextRequiredError("A chat message needs text or an image.")
    contents = list(history or [])
    contents.append(_user_turn(text + _location_context(location), image))
    return GeminiRequest(RequestKind.TEXT, contents)


def build_day_plan_request(preferences: str, location: Optional[LocationInfo]) -> GeminiRequest:
    location = _require_location(location, "a day plan")
    if not preferences.strip():
        raise TextRequiredError("Preferences are required for a day plan.",
                                user_message="Please enter your preferences for the day.")
    prompt = (
        "Create a detailed travel plan of duration based on user's number of days for a tourist "
        f"from the city at {location_clause(location)}. "
        f'The tourist\'s preferences are: "{preferences.strip()}". '
        "The plan should include a title and a list of activities with time, description, and optional "
        "details including the best mode of transport to the place if the user is not already at or very "
        "near to the location. For any text that needs emphasis or bolding, use HTML '<strong>' tags "
        "instead of markdown asterisks. DO NOT USE MARKDOWN SYNTAX or ** or # but use HTML syntax."
    )
    return GeminiRequest(RequestKind.TEXT, [_user_turn(prompt)], response_schema=DAY_PLAN_SCHEMA)


def build_summary_image_request(plan: DayPlan) -> GeminiRequest:
    scenes = ", ".join(a.description for a in plan.activities[:SUMMARY_IMAGE_ACTIVITIES])
    prompt = (
        f'Create a vibrant travel collage representing a trip titled "{plan.title}". '
        f"Include small, artistic scenes depicting: {scenes}. "
        "The style should be like a beautiful, modern travel scrapbook or a mood board."
    )
    return GeminiRequest(
        RequestKind.IMAGE,
        [{"role": "user", "parts": [{"text": prompt}]}],
        generation_config={"sampleCount": 1, "aspectRatio": "16:9"},
    )


def build_image_analysis_request(
    image: Optional[InlineImage],
    prompt: str = "",
    location: Optional[LocationInfo] = None,
) -> GeminiRequest:
    if image is None:
        raise ImageRequiredError()
    effective = prompt.strip() or DEFAULT_LENS_PROMPT
    return GeminiRequest(RequestKind.TEXT, [_user_turn(effective + _location_context(location), image)])


def build_translation_request(
    text: str,
    target_language: str,
    style: Optional[TranslationStyle] = None,
) -> GeminiRequest:
    if not text.strip():
        raise TextRequiredError("Nothing to translate.")
    target = target_language
    if style is not None:
        target = f"{target_language} in a {TranslationStyle(style).value} tone"
    prompt = (
        f"Translate the following text to {target}. "
        f'Only return the translated text, with no extra formatting or explanations: "{text}"'
    )
    return GeminiRequest(RequestKind.TEXT, [_user_turn(prompt)])


def build_speech_request(text: str, voice_name: str = "Kore") -> GeminiRequest:
    if not text.strip():
        raise TextRequiredError("Nothing to speak.")
    return GeminiRequest(
        RequestKind.SPEECH,
        [{"role": "user", "parts": [{"text": text}]}],
        generation_config={
            "responseModalities": ["AUDIO"],
            "speechConfig": {"voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice_name}}},
        },
    )


def build_emergency_info_request(location: Optional[LocationInfo]) -> GeminiRequest:
    location = _require_location(location, "emergency info")
    prompt = (
        f"For the location at {location_clause(location)}, provide the local emergency phone numbers "
        "for police, ambulance, and fire services. Also, find the name and address of the nearest hospital."
    )
    return GeminiRequest(RequestKind.TEXT, [_user_turn(prompt)], response_schema=EMERGENCY_INFO_SCHEMA)
