import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from .api.routes import router as proxy_router
from .config import get_settings
from .services.dispatcher import Dispatcher

logger = logging.getLogger("uvicorn.error")


def create_app(dispatcher: Optional[Dispatcher] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        app.state.dispatcher = dispatcher or Dispatcher.from_settings(settings)
        logger.info("Proxy Utility listening on port %s", settings.port)
        logger.info("Available endpoints:")
        logger.info("- POST /proxy - Proxy any HTTP request with full options")
        try:
            yield
        finally:
            await app.state.dispatcher.aclose()

    app = FastAPI(title="Proxy Utility", version="1.0.0", lifespan=lifespan)

    @app.get("/", response_class=PlainTextResponse, tags=["health"])
    async def index() -> str:
        return "Proxy Utility is Running..."

    @app.get("/healthz", tags=["health"])
    async def health_check() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(proxy_router)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level)


if __name__ == "__main__":
    run()
