import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from companion.api.routes import router
from companion.config import Settings, get_settings
from companion.services.gemini import GeminiClient
from companion.services.session import SessionRegistry

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, client=None) -> FastAPI:
    """Build the API. Pass `client` to swap the Gemini client (tests)."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        gemini = client or GeminiClient(settings)
        app.state.settings = settings
        app.state.registry = SessionRegistry(gemini, settings)
        logger.info(f"Companion API ready (text model {settings.text_model})")
        try:
            yield
        finally:
            app.state.registry.close_all()
            if client is None:
                await gemini.aclose()

    app = FastAPI(title="Travel Companion API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()
