import logging

import uvicorn
from pyngrok import ngrok

from companion.config import get_settings

# Module level so the reloader's worker process gets it too
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

if __name__ == "__main__":
    settings = get_settings()

    if settings.use_ngrok:
        # Start ngrok tunnel so the phone can reach the dev server
        public_url = ngrok.connect(settings.port).public_url
        logger.info(f"ngrok tunnel created at: {public_url}")

    # Start FastAPI server
    uvicorn.run(
        "companion.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level="debug",
    )
