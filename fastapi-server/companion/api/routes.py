import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile, status
from fastapi.responses import JSONResponse, StreamingResponse

from companion.api.deps import get_registry, get_session
from companion.errors import ImageRequiredError
from companion.models.schemas import (
    ChatView,
    DialIntent,
    EmergencyView,
    HomeView,
    LensView,
    LocationReport,
    LocationView,
    NavigateRequest,
    PhraseRequest,
    PlannerView,
    PlanRequest,
    SessionView,
    SpeakRequest,
    TranslateRequest,
    TranslatorView,
)
from companion.services.chat import ChatOrchestrator
from companion.services.emergency import EMERGENCY_PHRASES
from companion.services.session import AppSession, SessionRegistry
from companion.services.state import Feature
from companion.services.translator import LANGUAGES
from companion.utils.audio import ClientAudioOutput
from companion.utils.image import InlineImage, image_from_upload
from companion.utils.speech import create_speech_source

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Companion API"])


def _unprocessable(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


def _session_view(session: AppSession) -> SessionView:
    return SessionView(sessionId=session.id, activeFeature=session.active_feature.value)


def _location_view(session: AppSession) -> LocationView:
    provider = session.location
    return LocationView(
        sessionId=session.id,
        location=provider.location,
        loading=provider.loading,
        error=provider.error,
    )


@router.get("/")
async def root():
    return {"message": "Welcome to the travel companion API!"}


# Sessions

@router.post("/sessions", response_model=SessionView, status_code=status.HTTP_201_CREATED)
async def create_session(registry: SessionRegistry = Depends(get_registry)):
    return _session_view(registry.create())


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(session_id: str, registry: SessionRegistry = Depends(get_registry)):
    if not registry.close(session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown session: {session_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/sessions/{session_id}/navigate", response_model=SessionView)
async def navigate(body: NavigateRequest, session: AppSession = Depends(get_session)):
    try:
        feature = Feature(body.feature)
    except ValueError:
        raise _unprocessable(f"Unknown feature: {body.feature}")
    session.navigate(feature)
    return _session_view(session)


# Location

@router.get("/sessions/{session_id}/location", response_model=LocationView)
async def get_location(session: AppSession = Depends(get_session)):
    return _location_view(session)


@router.post("/sessions/{session_id}/location", response_model=LocationView)
async def report_location(body: LocationReport, session: AppSession = Depends(get_session)):
    if body.latitude is not None and body.longitude is not None:
        session.location.report(body.latitude, body.longitude)
    elif body.error:
        session.location.fail(body.error)
    else:
        raise _unprocessable("Provide latitude and longitude, or an error")
    return _location_view(session)


# Home

@router.get("/sessions/{session_id}/home", response_model=HomeView)
async def get_home(session: AppSession = Depends(get_session)):
    home = session.home()
    await home.sync()
    return home.to_view(session.id)


# Assistant chat

@router.get("/sessions/{session_id}/chat", response_model=ChatView)
async def get_chat(session: AppSession = Depends(get_session)):
    return session.chat().to_view(session.id)


async def _chat_events(session: AppSession, chat: ChatOrchestrator, text: str, image: Optional[InlineImage]):
    queue: asyncio.Queue = asyncio.Queue()

    def on_update(feature: Feature) -> None:
        if feature is not Feature.ASSISTANT:
            return
        messages = chat.state.messages
        queue.put_nowait({
            "type": "message",
            "index": len(messages) - 1,
            "message": messages[-1].model_dump(),
            "loading": chat.state.loading,
        })

    unsubscribe = session.channel.subscribe(on_update)
    try:
        # pass the message in; the input buffer is shared by every request of the session
        task = asyncio.create_task(chat.send(text, image))
        task.add_done_callback(lambda _: queue.put_nowait(None))
        while True:
            event = await queue.get()
            if event is None:
                break
            yield f"data: {json.dumps(event)}\n\n"
        ok = await task
        done = {"type": "done", "ok": ok, "historyLength": len(chat.state.history)}
        yield f"data: {json.dumps(done)}\n\n"
        yield "data: [DONE]\n\n"
    finally:
        unsubscribe()


@router.post("/sessions/{session_id}/chat")
async def send_chat(
    text: str = Form("", description="User message"),
    image: Optional[UploadFile] = File(None, description="Optional image attachment"),
    session: AppSession = Depends(get_session),
):
    chat = session.chat()
    if chat.state.loading:
        return JSONResponse(content=chat.to_view(session.id).model_dump())

    inline = None
    if image is not None:
        try:
            inline = await image_from_upload(image)
        except ImageRequiredError as e:
            raise _unprocessable(e.message)
    if not text.strip() and inline is None:
        raise _unprocessable("Type a message or attach an image")

    return StreamingResponse(_chat_events(session, chat, text, inline), media_type="text/event-stream")


# Day planner

@router.get("/sessions/{session_id}/planner", response_model=PlannerView)
async def get_plan(session: AppSession = Depends(get_session)):
    return session.planner().to_view(session.id)


@router.post("/sessions/{session_id}/planner", response_model=PlannerView)
async def generate_plan(body: PlanRequest, session: AppSession = Depends(get_session)):
    planner = session.planner()
    await planner.generate(body.preferences)
    return planner.to_view(session.id)


@router.delete("/sessions/{session_id}/planner", response_model=PlannerView)
async def new_plan(session: AppSession = Depends(get_session)):
    planner = session.planner()
    planner.reset()
    return planner.to_view(session.id)


# Travel lens

@router.post("/sessions/{session_id}/lens", response_model=LensView)
async def analyze_image(
    prompt: str = Form("", description="Optional question about the image"),
    image: Optional[UploadFile] = File(None, description="Image of the surroundings"),
    session: AppSession = Depends(get_session),
):
    lens = session.lens()
    if image is not None and not lens.state.loading:
        try:
            lens.select_image(await image_from_upload(image))
        except ImageRequiredError as e:
            raise _unprocessable(e.message)
    await lens.analyze(prompt)
    return lens.to_view(session.id)


# Translator

@router.get("/sessions/{session_id}/translator", response_model=TranslatorView)
async def get_translator(session: AppSession = Depends(get_session)):
    return session.translator().to_view(session.id)


@router.get("/translator/languages")
async def list_languages():
    return {"languages": LANGUAGES}


@router.post("/sessions/{session_id}/translator", response_model=TranslatorView)
async def translate(body: TranslateRequest, session: AppSession = Depends(get_session)):
    translator = session.translator()
    if not translator.state.loading:
        try:
            if body.targetLanguage:
                translator.set_target_language(body.targetLanguage)
            translator.set_style(body.style)
            translator.set_mode("text")
        except ValueError as e:
            raise _unprocessable(str(e))
    await translator.translate(body.text)
    return translator.to_view(session.id)


@router.post("/sessions/{session_id}/translator/speak")
async def speak(body: SpeakRequest, session: AppSession = Depends(get_session)):
    translator = session.translator()
    buffer = await translator.speak(body.text)
    if buffer is None:
        return JSONResponse(content=translator.to_view(session.id).model_dump())
    return Response(content=buffer.to_wav(), media_type="audio/wav")


@router.post("/sessions/{session_id}/translator/voice", response_model=TranslatorView)
async def translate_voice(
    audio: UploadFile = File(..., description="Recorded speech (WAV, AIFF or FLAC)"),
    targetLanguage: Optional[str] = Form(None),
    session: AppSession = Depends(get_session),
):
    translator = session.translator()
    try:
        translator.set_mode("voice")
        if targetLanguage:
            translator.set_target_language(targetLanguage)
        source = create_speech_source(session.settings.speech_input, await audio.read())
    except ValueError as e:
        raise _unprocessable(str(e))
    await translator.listen_once(source)
    return translator.to_view(session.id)


@router.get("/sessions/{session_id}/translator/audio")
async def last_spoken_audio(session: AppSession = Depends(get_session)):
    output = session.resources.audio_output()
    if not isinstance(output, ClientAudioOutput) or output.last_played is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No audio has been played yet")
    return Response(content=output.last_played.to_wav(), media_type="audio/wav")


# Emergency

@router.get("/emergency/phrases")
async def list_phrases():
    return {"phrases": EMERGENCY_PHRASES}


@router.get("/sessions/{session_id}/emergency", response_model=EmergencyView)
async def get_emergency(session: AppSession = Depends(get_session)):
    return session.emergency().to_view(session.id)


@router.post("/sessions/{session_id}/emergency/info", response_model=EmergencyView)
async def fetch_emergency_info(session: AppSession = Depends(get_session)):
    emergency = session.emergency()
    await emergency.fetch_info()
    return emergency.to_view(session.id)


@router.post("/sessions/{session_id}/emergency/phrase", response_model=EmergencyView)
async def translate_phrase(body: PhraseRequest, session: AppSession = Depends(get_session)):
    emergency = session.emergency()
    try:
        await emergency.translate_phrase(body.phrase)
    except ValueError as e:
        raise _unprocessable(str(e))
    return emergency.to_view(session.id)


@router.get("/sessions/{session_id}/emergency/call", response_model=DialIntent)
async def emergency_call(session: AppSession = Depends(get_session)):
    emergency = session.emergency()
    return DialIntent(sessionId=session.id, number=emergency.contact_number, uri=emergency.call_intent())
