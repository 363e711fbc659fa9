"""
Receipt OCR API Endpoints

REST API for receipt recognition:
- POST /api/receipt - Upload a receipt image, returns the extracted items
- GET /api/ocr/status - Module status

Flow:
1. Validate the upload (content type, size)
2. Stage the image under OCR_UPLOAD_DIR
3. Run the recognition pipeline (submit, poll, fetch, extract)
4. Return the items as a JSON array of {description, price}
"""

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from config import Settings, get_settings
from ocr.exceptions import (
    AuthError,
    FileError,
    InvalidTaskError,
    NetworkError,
    OCRError,
    PollTimeoutError,
    RemoteTaskError,
    ServiceError,
    UnknownResponseError,
)
from ocr.services.receipt_pipeline import ReceiptPipeline
from sentry_integration import capture_exception

logger = logging.getLogger(__name__)

router = APIRouter(tags=["OCR"])

SUPPORTED_FORMATS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/tiff": ".tif",
    "image/bmp": ".bmp",
    "image/gif": ".gif",
    "application/pdf": ".pdf",
}

# Most specific first
ERROR_STATUS_CODES = [
    (FileError, 400, "file_error"),
    (InvalidTaskError, 400, "invalid_task"),
    (AuthError, 502, "auth_error"),
    (NetworkError, 502, "network_error"),
    (UnknownResponseError, 502, "unknown_response"),
    (ServiceError, 502, "service_error"),
    (RemoteTaskError, 422, "recognition_failed"),
    (PollTimeoutError, 504, "timeout"),
]

# Client input problems are not worth an error-tracking event
_CLIENT_ERRORS = (FileError, InvalidTaskError)


# ==================== Response Models ====================

class ExtractedItemModel(BaseModel):
    """One item recovered from the receipt."""
    description: str
    price: str


class OCRStatusResponse(BaseModel):
    """Module status response."""
    module: str
    status: str
    version: str
    features: dict
    timestamp: str


# ==================== Dependencies ====================

def get_receipt_pipeline(settings: Settings = Depends(get_settings)) -> ReceiptPipeline:
    return ReceiptPipeline.from_settings(settings)


# ==================== Audit Logging ====================

def log_ocr_event(event_type: str, details: dict, success: bool = True):
    """Log OCR event for audit trail."""
    log_entry = {
        "event": event_type,
        "details": details,
        "success": success,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

    if success:
        logger.info(f"OCR event: {event_type}", extra=log_entry)
    else:
        logger.warning(f"OCR event FAILED: {event_type}", extra=log_entry)


def error_response(error: OCRError) -> HTTPException:
    """Map a pipeline error to an HTTP error."""
    for error_class, status_code, kind in ERROR_STATUS_CODES:
        if isinstance(error, error_class):
            return HTTPException(
                status_code=status_code,
                detail={"error": kind, "message": error.message}
            )
    return HTTPException(
        status_code=500,
        detail={"error": "ocr_error", "message": error.message}
    )


# ==================== Endpoints ====================

@router.get("/ocr/status", response_model=OCRStatusResponse, summary="Module status")
async def get_module_status(settings: Settings = Depends(get_settings)):
    """
    Get OCR module status.

    Reports whether service credentials are configured. No authentication
    required and no secrets exposed.
    """
    configured = settings.ocr_credentials_configured

    return OCRStatusResponse(
        module="ocr",
        status="operational" if configured else "degraded",
        version=settings.API_VERSION,
        features={
            "receipt_ocr": configured,
            "image_formats": sorted(SUPPORTED_FORMATS),
            "poll_interval_seconds": settings.OCR_POLL_INTERVAL_SECONDS,
            "max_poll_attempts": settings.OCR_MAX_POLL_ATTEMPTS,
        },
        timestamp=datetime.now(timezone.utc).isoformat()
    )


@router.post("/receipt", response_model=List[ExtractedItemModel], summary="Recognize receipt")
async def upload_receipt(
    receipt: UploadFile = File(..., description="Photographed receipt"),
    settings: Settings = Depends(get_settings),
    pipeline: ReceiptPipeline = Depends(get_receipt_pipeline)
):
    """
    Recognize a receipt image and return its purchased items.

    Blocks until the recognition task finishes; returns the items in the
    order they appear on the receipt.
    """
    content_type = (receipt.content_type or "").split(";")[0].strip()
    if content_type not in SUPPORTED_FORMATS:
        raise HTTPException(
            status_code=415,
            detail={
                "error": "unsupported_format",
                "message": f"Unsupported file format: {content_type or 'unknown'}. "
                           f"Supported: {sorted(SUPPORTED_FORMATS)}"
            }
        )

    content = await receipt.read()
    if not content:
        raise HTTPException(
            status_code=400,
            detail={"error": "empty_file", "message": "Uploaded file is empty"}
        )
    if len(content) > settings.upload_max_bytes:
        raise HTTPException(
            status_code=413,
            detail={
                "error": "file_too_large",
                "message": f"File too large: {len(content)} bytes. Max: {settings.upload_max_bytes} bytes"
            }
        )

    image_path = _stage_upload(content, SUPPORTED_FORMATS[content_type], settings.OCR_UPLOAD_DIR)
    log_ocr_event("ocr.receipt.started", {"file_name": receipt.filename, "file_size": len(content)})

    try:
        items = await pipeline.recognize_receipt(image_path)
    except OCRError as e:
        log_ocr_event(
            "ocr.receipt.failed",
            {"error_type": type(e).__name__, "error": e.message},
            success=False
        )
        if not isinstance(e, _CLIENT_ERRORS):
            extra = {"file_name": receipt.filename}
            task = getattr(e, "task", None)
            if task is not None:
                extra["task"] = task.to_dict()
            capture_exception(e, **extra)
        raise error_response(e)
    finally:
        _discard_upload(image_path)

    log_ocr_event("ocr.receipt.completed", {"items": len(items)})
    return [ExtractedItemModel(**item.to_dict()) for item in items]


# ==================== Helper Functions ====================

def _stage_upload(content: bytes, extension: str, upload_dir: str) -> Path:
    """Write an uploaded image to a uniquely named staging file."""
    directory = Path(upload_dir)
    try:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{uuid.uuid4()}{extension}"
        path.write_bytes(content)
    except OSError as e:
        logger.error(f"Failed to stage upload: {e}")
        raise HTTPException(
            status_code=500,
            detail={"error": "storage_error", "message": "Failed to store upload"}
        )
    return path


def _discard_upload(path: Optional[Path]):
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Failed to remove staged upload {path}: {e}")
