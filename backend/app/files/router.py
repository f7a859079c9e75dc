"""FastAPI router for image and document uploads.

Endpoints:
    POST /img/       - multipart field ``image``
    POST /document/  - multipart field ``document``

Both answer with a plain-text reference path on success.
"""
import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import PlainTextResponse

from app.config import AppConfig

from .gatekeeper import UploadGatekeeper
from .ledger import UploadLedger
from .reference import to_reference
from .schemas import (
    NOT_ATTACHED_MESSAGES,
    UNSUPPORTED_FILE_TYPE,
    AdmissionStatus,
    Bucket,
    UploadRequest,
)
from .storage import FileTooLargeError, StorageError, StorageRouter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["files"])


def get_app_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_gatekeeper(request: Request) -> UploadGatekeeper:
    return request.app.state.gatekeeper


def get_storage_router(request: Request) -> StorageRouter:
    return request.app.state.storage


def get_ledger(request: Request) -> Optional[UploadLedger]:
    """The ledger is opened in the app lifespan and may be disabled."""
    return getattr(request.app.state, "ledger", None)


async def handle_upload(
    request: Request,
    upload: Optional[UploadFile],
    field_name: str,
    endpoint_bucket: Bucket,
    config: AppConfig,
    gatekeeper: UploadGatekeeper,
    storage: StorageRouter,
    ledger: Optional[UploadLedger],
) -> PlainTextResponse:
    """Admit, store and reference a single uploaded file.

    Args:
        request: Incoming request (carries the session)
        upload: The multipart file, or None if the field was absent
        field_name: Multipart field name, used in the stored filename
        endpoint_bucket: Bucket the endpoint is named after (picks the
            "not attached" message only; the stored bucket comes from
            classification)

    Returns:
        Plain-text reference path, or the "not attached" message

    Raises:
        HTTPException 400: Unsupported file type
        HTTPException 401: No session, when silent denial is disabled
        HTTPException 413: File exceeds the size limit
        HTTPException 500: Storage failed
    """
    not_attached = NOT_ATTACHED_MESSAGES[endpoint_bucket]

    if upload is None or not upload.filename:
        return PlainTextResponse(not_attached)

    upload_request = UploadRequest(
        field_name=field_name,
        filename=upload.filename,
        mime_type=upload.content_type,
        stream=upload,
    )
    admission = gatekeeper.admit(request, upload_request)

    if admission.status is AdmissionStatus.IGNORED:
        if not config.uploads.silent_auth_denial:
            raise HTTPException(status_code=401, detail="Not authenticated")
        return PlainTextResponse(not_attached)

    if admission.status is AdmissionStatus.REJECTED:
        raise HTTPException(status_code=400, detail=UNSUPPORTED_FILE_TYPE)

    try:
        stored = await storage.store(admission.bucket, upload_request)
    except FileTooLargeError as e:
        raise HTTPException(status_code=413, detail=str(e))
    except StorageError as e:
        logger.error(f"File upload failed: {e}")
        raise HTTPException(status_code=500, detail="Upload failed")

    try:
        reference = to_reference(stored)
        if ledger is not None:
            ledger.record(stored, reference)
    except Exception as e:
        # The file is only kept once its reference and metadata exist
        logger.error(f"Recording upload {stored.stored_filename} failed: {e}")
        Path(stored.path).unlink(missing_ok=True)
        raise HTTPException(status_code=500, detail="Upload failed")

    logger.info(
        f"File uploaded: {stored.original_filename} "
        f"({stored.size_bytes} bytes) by user {admission.user_id} -> {reference}"
    )
    return PlainTextResponse(reference)


@router.post("/img/", response_class=PlainTextResponse)
async def upload_image(
    request: Request,
    image: Optional[UploadFile] = File(None),
    config: AppConfig = Depends(get_app_config),
    gatekeeper: UploadGatekeeper = Depends(get_gatekeeper),
    storage: StorageRouter = Depends(get_storage_router),
    ledger: Optional[UploadLedger] = Depends(get_ledger),
):
    """Upload an image (or document) under the ``image`` field."""
    return await handle_upload(
        request, image, "image", Bucket.IMAGE, config, gatekeeper, storage, ledger
    )


@router.post("/document/", response_class=PlainTextResponse)
async def upload_document(
    request: Request,
    document: Optional[UploadFile] = File(None),
    config: AppConfig = Depends(get_app_config),
    gatekeeper: UploadGatekeeper = Depends(get_gatekeeper),
    storage: StorageRouter = Depends(get_storage_router),
    ledger: Optional[UploadLedger] = Depends(get_ledger),
):
    """Upload a document (or image) under the ``document`` field."""
    return await handle_upload(
        request, document, "document", Bucket.DOCUMENT, config, gatekeeper, storage, ledger
    )
