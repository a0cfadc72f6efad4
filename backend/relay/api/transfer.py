import logging
import secrets
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.datastructures import UploadFile

from relay.config import Settings
from relay.core.capacity import capacity_status
from relay.core.errors import AuthError, FileMissing, KeySpaceExhausted, StoreUnavailable
from relay.core.registry import KeyRegistry
from relay.services.download import DownloadService
from relay.services.upload_pipeline import UploadPipeline

logger = logging.getLogger(__name__)

router = APIRouter(tags=["transfer"])

VALID = "VALID"
INVALID_KEY = "INVALID_KEY"


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> KeyRegistry:
    return request.app.state.registry


def get_upload_pipeline(request: Request) -> UploadPipeline:
    return request.app.state.upload_pipeline


def get_download_service(request: Request) -> DownloadService:
    return request.app.state.download_service


def check_credential(presented: Optional[str], expected: str) -> None:
    if not presented or not expected:
        raise AuthError("missing credential")
    if not secrets.compare_digest(presented.encode(), expected.encode()):
        raise AuthError("credential mismatch")


@router.get("/valid", response_class=PlainTextResponse)
def validate_key(key: Optional[str] = Query(None), service: DownloadService = Depends(get_download_service)):
    logger.info(f"[VALID] validating key: {key!r}")
    return VALID if service.is_valid(key) else INVALID_KEY


@router.get("/download")
def download(key: Optional[str] = Query(None), service: DownloadService = Depends(get_download_service)):
    logger.info(f"[DOWNLOAD] validating key: {key!r}")
    if not service.is_valid(key):
        return PlainTextResponse(INVALID_KEY)

    try:
        opened = service.open(key)
    except StoreUnavailable as e:
        logger.error(f"[DOWNLOAD] could not retrieve record for {key}: {e}")
        return PlainTextResponse("Metadata store unavailable.", status_code=503)
    except FileMissing as e:
        logger.error(f"[DOWNLOAD] {e}")
        return PlainTextResponse("Transfer file missing.", status_code=404)

    logger.info(f"[DOWNLOAD] streaming {key} ({opened.size} bytes)")
    return StreamingResponse(
        opened.iter_chunks(),
        media_type="application/octet-stream",
        headers={"Content-Length": str(opened.size)},
    )


@router.post("/upload", response_class=PlainTextResponse)
async def upload(
    request: Request,
    background_tasks: BackgroundTasks,
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_app_settings),
    registry: KeyRegistry = Depends(get_registry),
    pipeline: UploadPipeline = Depends(get_upload_pipeline),
):
    logger.info("[UPLOAD] receiving upload request")
    try:
        check_credential(authorization, settings.TRANSFER_API_KEY)
    except AuthError as e:
        logger.warning(f"[UPLOAD] rejected: {e}")
        return PlainTextResponse("Invalid API key.", status_code=401)

    try:
        key = registry.allocate()
    except KeySpaceExhausted as e:
        logger.error(f"[UPLOAD] {e}")
        return PlainTextResponse("No transfer keys available.", status_code=503)
    logger.info(f"[UPLOAD] request ID: {key}")

    try:
        form = await request.form()
    except Exception as e:
        logger.error(f"[UPLOAD] error receiving file for {key}: {e}")
        pipeline.discard(key)
        return PlainTextResponse("Malformed upload.", status_code=400)

    try:
        payload = next((v for v in form.values() if isinstance(v, UploadFile)), None)
        if payload is None:
            logger.error(f"[UPLOAD] no file part in upload {key}")
            pipeline.discard(key)
            return PlainTextResponse("No file received.", status_code=400)
        incoming = await run_in_threadpool(pipeline.receive, key, payload.file)
    except Exception as e:
        logger.error(f"[UPLOAD] could not spool upload {key}: {e}")
        pipeline.discard(key)
        return PlainTextResponse("Could not store upload.", status_code=500)
    finally:
        await form.close()

    background_tasks.add_task(pipeline.finalize, key, incoming)
    return PlainTextResponse(f"requestId:{key}")


@router.get("/status", response_class=PlainTextResponse)
def status(registry: KeyRegistry = Depends(get_registry), settings: Settings = Depends(get_app_settings)):
    return capacity_status(registry, settings.MAX_KEYS)
