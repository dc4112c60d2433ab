"""API route definitions."""

import time
from functools import lru_cache
from fastapi import APIRouter, Depends, UploadFile, File, Form, HTTPException
from typing import Optional
import logging

from ..models import (
    FieldMatch,
    CategoryCheck,
    ErrorResponse,
    HealthResponse,
    TextVerificationRequest,
    VerificationResponse,
)
from ..services import (
    EasyOCRBackend,
    ExpectedFields,
    LabelImage,
    MissingImageError,
    OCRBackend,
    ProductCategory,
    VerificationResult,
    VerificationService,
    validate_upload,
)
from .. import __version__

logger = logging.getLogger(__name__)
router = APIRouter()

# Transcript excerpt lengths returned for audit display
EXTRACTED_TEXT_LIMIT = 1500
SIDE_TEXT_LIMIT = 750


def get_ocr_backend() -> OCRBackend:
    """Process-wide OCR engine."""
    return EasyOCRBackend()


@lru_cache
def get_verification_service() -> VerificationService:
    """Shared verification service (stateless between requests)."""
    return VerificationService(get_ocr_backend())


def _to_response(result: VerificationResult, processing_time_ms: int) -> VerificationResponse:
    """Convert a service result to the response model, truncating transcripts."""
    def field(match) -> FieldMatch:
        return FieldMatch(matched=match.matched, detail=match.detail, confidence=match.confidence)

    category = result.category_check
    return VerificationResponse(
        success=result.success,
        brand_name=field(result.brand_name),
        product_type=field(result.product_type),
        alcohol_content=field(result.alcohol_content),
        net_contents=field(result.net_contents),
        government_warning=field(result.government_warning) if result.government_warning else None,
        category_check=CategoryCheck(
            rule=category.rule, matched=category.matched, detail=category.detail
        ) if category else None,
        overall_confidence=result.overall_confidence,
        extracted_text=result.extracted_text[:EXTRACTED_TEXT_LIMIT],
        front_text=result.front_text[:SIDE_TEXT_LIMIT],
        back_text=result.back_text[:SIDE_TEXT_LIMIT],
        processing_note=(
            "Processed both front and back labels"
            if result.back_processed
            else "Processed front label only"
        ),
        processing_time_ms=processing_time_ms,
    )


async def _read_upload(upload: Optional[UploadFile]) -> Optional[LabelImage]:
    """Read and validate an uploaded label image."""
    if upload is None:
        return None

    try:
        image_bytes = await upload.read()
    except Exception as e:
        logger.error(f"Failed to read uploaded image: {e}")
        raise HTTPException(status_code=400, detail="Failed to read uploaded image")

    if not image_bytes:
        return None

    is_valid, error_msg = validate_upload(image_bytes, upload.filename or "unknown")
    if not is_valid:
        raise HTTPException(status_code=400, detail=error_msg)

    return LabelImage.from_bytes(image_bytes)


@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(ocr_backend: OCRBackend = Depends(get_ocr_backend)):
    """Check API health and OCR readiness."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        ocr_ready=ocr_backend.is_ready
    )


@router.post(
    "/verify",
    response_model=VerificationResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Missing or invalid image"},
        500: {"model": ErrorResponse, "description": "Processing error"}
    },
    tags=["Verification"]
)
async def verify_label(
    front_image: Optional[UploadFile] = File(None, description="Front label image"),
    back_image: Optional[UploadFile] = File(None, description="Back label image (optional)"),
    brand_name: str = Form(..., description="Expected brand name"),
    product_type: str = Form(..., description="Expected class/type"),
    alcohol_content: str = Form(..., description="Expected alcohol content, e.g. 45%"),
    product_category: str = Form("", description="spirits, wine or beer"),
    net_contents: str = Form("", description="Expected net contents, e.g. 750 mL"),
    service: VerificationService = Depends(get_verification_service),
):
    """
    Verify label image(s) against application data.

    The front image is required. A back image, when supplied, is OCR'd as well
    and its text is checked together with the front (mainly for the
    government warning).
    """
    start_time = time.time()

    front = await _read_upload(front_image)
    if front is None:
        raise HTTPException(status_code=400, detail="No front image provided")
    back = await _read_upload(back_image)

    expected = ExpectedFields(
        brand_name=brand_name,
        product_type=product_type,
        alcohol_content=alcohol_content,
        product_category=ProductCategory.parse(product_category),
        net_contents=net_contents,
    )

    try:
        result = await service.verify(front, back, expected)
    except MissingImageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception(f"Verification error: {e}")
        raise HTTPException(status_code=500, detail="Failed to process request")

    total_time = int((time.time() - start_time) * 1000)
    logger.info(f"Verification finished in {total_time}ms (success={result.success})")
    return _to_response(result, total_time)


@router.post(
    "/verify/text",
    response_model=VerificationResponse,
    tags=["Verification"]
)
async def verify_text(
    request: TextVerificationRequest,
    service: VerificationService = Depends(get_verification_service),
):
    """
    Re-verify corrected label text.

    Used after a reviewer edits the OCR transcript to match what is printed
    on the label; no image processing is done.
    """
    start_time = time.time()
    fields = request.fields
    expected = ExpectedFields(
        brand_name=fields.brand_name,
        product_type=fields.product_type,
        alcohol_content=fields.alcohol_content,
        product_category=ProductCategory.parse(fields.product_category.value),
        net_contents=fields.net_contents,
    )

    result = service.verify_text(request.text, expected)
    return _to_response(result, int((time.time() - start_time) * 1000))
