from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict


Role = Literal["user", "model"]


class LocationInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float


class ChatMessage(BaseModel):
    role: Role
    text: str
    image: Optional[str] = None  # data URI


class Activity(BaseModel):
    time: str
    description: str
    details: Optional[str] = None


class DayPlan(BaseModel):
    title: str
    activities: List[Activity]


class HomeData(BaseModel):
    weather: str
    tip: str
    city: str


class EmergencyInfo(BaseModel):
    police: str
    ambulance: str
    fire: str
    hospitalName: str
    hospitalAddress: str


class TranslationStyle(str, Enum):
    FORMAL = "formal"
    INFORMAL = "informal"


# Request bodies

class LocationReport(BaseModel):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    error: Optional[str] = None


class NavigateRequest(BaseModel):
    feature: str


class PlanRequest(BaseModel):
    preferences: str


class TranslateRequest(BaseModel):
    text: str
    targetLanguage: Optional[str] = None
    style: Optional[TranslationStyle] = None


class SpeakRequest(BaseModel):
    text: Optional[str] = None


class PhraseRequest(BaseModel):
    phrase: str


# Views returned to the client

class SessionView(BaseModel):
    sessionId: str
    activeFeature: str


class LocationView(BaseModel):
    sessionId: str
    location: Optional[LocationInfo] = None
    loading: bool
    error: Optional[str] = None


class HomeView(BaseModel):
    sessionId: str
    status: Literal["loading", "ready", "location_error", "unavailable", "error"]
    data: Optional[HomeData] = None
    error: Optional[str] = None


class ChatView(BaseModel):
    sessionId: str
    messages: List[ChatMessage]
    loading: bool
    historyLength: int


class PlannerView(BaseModel):
    sessionId: str
    plan: Optional[DayPlan] = None
    summaryImage: Optional[str] = None
    loading: bool
    generatingImage: bool
    error: Optional[str] = None


class LensView(BaseModel):
    sessionId: str
    analysis: str = ""
    loading: bool
    error: Optional[str] = None


class TranslatorView(BaseModel):
    sessionId: str
    targetLanguage: str
    style: Optional[TranslationStyle] = None
    sourceText: str = ""
    translatedText: str = ""
    audioCached: bool = False
    transcribedText: str = ""
    voiceTranslatedText: str = ""
    loading: bool
    speaking: bool
    listening: bool
    error: Optional[str] = None
    speechError: Optional[str] = None


class EmergencyView(BaseModel):
    sessionId: str
    info: Optional[EmergencyInfo] = None
    loadingInfo: bool
    infoError: Optional[str] = None
    translatedPhrase: Optional[str] = None
    translating: bool


class DialIntent(BaseModel):
    sessionId: str
    number: str
    uri: str
