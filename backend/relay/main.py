import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from relay.api.transfer import router as transfer_router
from relay.config import Settings, get_settings
from relay.core.registry import KeyRegistry, KEY_ALPHABET, KEY_LENGTH
from relay.db.store import MetadataStore, get_metadata_store
from relay.log import setup_logging
from relay.services.download import DownloadService
from relay.services.expiry_scheduler import ExpiryScheduler
from relay.services.upload_pipeline import UploadPipeline

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[MetadataStore] = None,
    registry: Optional[KeyRegistry] = None,
) -> FastAPI:
    settings = settings if settings is not None else get_settings()
    setup_logging(settings.LOG_LEVEL)

    store = store if store is not None else get_metadata_store(settings)
    registry = registry if registry is not None else KeyRegistry()

    app = FastAPI(title=settings.APP_NAME)
    app.state.settings = settings
    app.state.store = store
    app.state.registry = registry
    app.state.upload_pipeline = UploadPipeline(
        registry, store, settings.DATA_DIR, settings.BACKUP_DIR, settings.INCOMING_DIR
    )
    app.state.download_service = DownloadService(registry, store, settings.DATA_DIR)
    app.state.scheduler = ExpiryScheduler(
        registry,
        store,
        ttl_ms=settings.TRANSFER_TTL_MS,
        interval_seconds=settings.CLEANUP_INTERVAL_SECONDS,
        batch_size=settings.SWEEP_BATCH_SIZE,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins(),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"[HTTP] {request.method} {request.url.path}" + (f"?{request.url.query}" if request.url.query else ""))
        return await call_next(request)

    @app.on_event("startup")
    def startup():
        logger.info("Starting new instance of server.")
        app.state.upload_pipeline.ensure_dirs()
        store.init()
        if settings.SCHEDULER_ENABLED:
            app.state.scheduler.start()

    @app.on_event("shutdown")
    def shutdown():
        app.state.scheduler.stop()
        store.close()

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.get("/", response_class=HTMLResponse, include_in_schema=False)
    def index(request: Request):
        return templates.TemplateResponse(
            request,
            "index.html",
            {
                "app_name": settings.APP_NAME,
                "ttl_minutes": settings.TRANSFER_TTL_MS // 60000,
                "max_keys": settings.MAX_KEYS,
                "key_length": KEY_LENGTH,
                "key_alphabet": KEY_ALPHABET,
            },
        )

    app.include_router(transfer_router)
    return app
