"""Services for image preprocessing, OCR, text normalization, field matching and verification."""

from .preprocessing import (
    ImageTransformer,
    ImageVariant,
    ImageVariantGenerator,
    LabelImage,
    LabelRegion,
    VariantKind,
    detect_bottle_label,
    extract_label_region,
    validate_upload,
)
from .ocr import (
    BestTranscriptSelector,
    EasyOCRBackend,
    OCRBackend,
    OCRSession,
    OCRUnavailableError,
    TranscriptCandidate,
)
from .normalization import normalize, strip_units
from .matching import (
    CategoryCheckResult,
    FieldMatchResult,
    FieldMatchers,
    ProductCategory,
    score_confidence,
)
from .verification import (
    ExpectedFields,
    MissingImageError,
    VerificationResult,
    VerificationService,
    VerificationStage,
)

__all__ = [
    "ImageTransformer",
    "ImageVariant",
    "ImageVariantGenerator",
    "LabelImage",
    "LabelRegion",
    "VariantKind",
    "detect_bottle_label",
    "extract_label_region",
    "validate_upload",
    "BestTranscriptSelector",
    "EasyOCRBackend",
    "OCRBackend",
    "OCRSession",
    "OCRUnavailableError",
    "TranscriptCandidate",
    "normalize",
    "strip_units",
    "CategoryCheckResult",
    "FieldMatchResult",
    "FieldMatchers",
    "ProductCategory",
    "score_confidence",
    "ExpectedFields",
    "MissingImageError",
    "VerificationResult",
    "VerificationService",
    "VerificationStage",
]
