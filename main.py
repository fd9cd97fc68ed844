import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from routes.realtime_ws import router as realtime_router
from routes.session_route import router as session_router
from services.realtime.connection_multiplexer import ConnectionMultiplexer
from services.realtime.session_store import SessionStore
from services.realtime.sync_protocol import SyncProtocolEngine
from services.realtime.viewer_registry import ViewerRegistry
from utils.settings import Settings, load_settings

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - the in-memory session store and viewer registry
      - the connection multiplexer
      - the sync protocol engine wired to all three
    and attach them to `app.state`.
    """
    store = SessionStore()
    viewers = ViewerRegistry()
    multiplexer = ConnectionMultiplexer()

    app.state.session_store = store
    app.state.viewer_registry = viewers
    app.state.connection_multiplexer = multiplexer
    app.state.sync_engine = SyncProtocolEngine(store, viewers, multiplexer)
    LOGGER.info("Sync core ready")

    try:
        yield
    finally:
        await multiplexer.close()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_: Request, exc: RequestValidationError):
        # Rejected inputs may be non-finite floats, which JSON cannot carry.
        errors = [{"loc": err["loc"], "msg": err["msg"], "type": err["type"]} for err in exc.errors()]
        return JSONResponse(status_code=422, content={"detail": errors})

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that reports whether the sync core is wired up.
        """
        has_engine = getattr(request.app.state, "sync_engine", None) is not None
        return {"ok": True, "sync_engine": has_engine}

    # Register application routers
    app.include_router(session_router)
    app.include_router(realtime_router)

    return app


app = create_app()
