"""Verification service: photo(s) + expected fields -> per-field verdicts.

Per request:
    received -> front processed -> (back processed | back skipped) -> matched -> completed

Front and back labels are OCR'd concurrently and joined before matching, so a
phrase counts no matter which side it was printed on. Only a missing front
image stops a request; every OCR or preprocessing failure degrades to less
text and therefore to non-matches.
"""

import asyncio
from typing import List, Optional
from dataclasses import dataclass, field
from enum import Enum
import logging

from .preprocessing import ImageVariantGenerator, LabelImage
from .ocr import BestTranscriptSelector, OCRBackend, TranscriptCandidate
from .normalization import normalize
from .matching import (
    CategoryCheckResult,
    FieldMatchers,
    FieldMatchResult,
    ProductCategory,
    category_rule_for,
)
from ..config import get_settings

logger = logging.getLogger(__name__)


class MissingImageError(ValueError):
    """No front label image was supplied."""


class VerificationStage(str, Enum):
    """Pipeline stage reached by a request."""
    RECEIVED = "received"
    FRONT_PROCESSED = "front_processed"
    BACK_PROCESSED = "back_processed"
    BACK_SKIPPED = "back_skipped"
    MATCHED = "matched"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ExpectedFields:
    """Application data the label is checked against."""
    brand_name: str
    product_type: str
    alcohol_content: str
    product_category: ProductCategory = ProductCategory.UNSET
    net_contents: str = ""


@dataclass
class VerificationResult:
    """Per-field verdicts plus the transcripts they were computed from."""
    brand_name: FieldMatchResult
    product_type: FieldMatchResult
    alcohol_content: FieldMatchResult
    net_contents: FieldMatchResult
    government_warning: Optional[FieldMatchResult]  # Only when a warning marker was seen
    category_check: Optional[CategoryCheckResult]   # Only for categories with a rule
    extracted_text: str
    front_text: str = ""
    back_text: str = ""
    back_processed: bool = False
    stages: List[VerificationStage] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Brand, product type and alcohol content all matched; everything else is advisory."""
        return (
            self.brand_name.matched
            and self.product_type.matched
            and self.alcohol_content.matched
        )

    @property
    def overall_confidence(self) -> int:
        brand = self.brand_name.confidence or 0
        product_type = self.product_type.confidence or 0
        return int((brand + product_type) / 2 + 0.5)


class VerificationService:
    """Coordinates variant generation, OCR and field matching for one request."""

    def __init__(
        self,
        ocr_backend: OCRBackend,
        generator: Optional[ImageVariantGenerator] = None,
        selector: Optional[BestTranscriptSelector] = None,
        matchers: Optional[FieldMatchers] = None,
    ):
        self.settings = get_settings()
        self.ocr_backend = ocr_backend
        self.generator = generator or ImageVariantGenerator()
        self.selector = selector or BestTranscriptSelector(timeout_s=self.settings.ocr_image_timeout_s)
        self.matchers = matchers or FieldMatchers.from_settings()

    async def verify(
        self,
        front: Optional[LabelImage],
        back: Optional[LabelImage],
        expected: ExpectedFields,
    ) -> VerificationResult:
        """
        Verify one label (front, optional back) against expected fields.

        Raises:
            MissingImageError: front image absent; nothing is processed.
        """
        if front is None or not front.data:
            raise MissingImageError("No front image provided")

        stages = [VerificationStage.RECEIVED]

        # Independent images: run both, wait for both
        if back is not None and back.data:
            front_best, back_best = await asyncio.gather(
                asyncio.to_thread(self.process_image, front, "front"),
                asyncio.to_thread(self.process_image, back, "back"),
            )
            stages += [VerificationStage.FRONT_PROCESSED, VerificationStage.BACK_PROCESSED]
        else:
            front_best = await asyncio.to_thread(self.process_image, front, "front")
            back_best = None
            stages += [VerificationStage.FRONT_PROCESSED, VerificationStage.BACK_SKIPPED]

        back_text = back_best.text if back_best is not None else ""
        combined = f"{front_best.text} {back_text}".strip()

        result = self._match(combined, expected, stages)
        result.front_text = front_best.text
        result.back_text = back_text
        result.back_processed = back_best is not None
        result.stages.append(VerificationStage.COMPLETED)

        logger.info(
            f"Verification complete: success={result.success}, "
            f"text={len(combined)} chars, back={'yes' if back_best is not None else 'no'}"
        )
        return result

    def verify_text(self, text: str, expected: ExpectedFields) -> VerificationResult:
        """Match already-extracted (e.g. manually corrected) text without OCR."""
        result = self._match(text or "", expected, [VerificationStage.RECEIVED])
        result.front_text = text or ""
        result.stages.append(VerificationStage.COMPLETED)
        return result

    def process_image(self, image: LabelImage, side: str = "front") -> TranscriptCandidate:
        """Bottle crop -> variants -> best transcript. Never raises."""
        try:
            prepared = self.generator.prepare(image)
            variants = self.generator.generate(prepared)
            logger.info(f"Running OCR on {len(variants)} variants of {side} image")
            return self.selector.select_best(variants, self.ocr_backend)
        except Exception as e:
            logger.exception(f"Error processing {side} image: {e}")
            return TranscriptCandidate.empty()

    def _match(
        self,
        text: str,
        expected: ExpectedFields,
        stages: List[VerificationStage],
    ) -> VerificationResult:
        normalized = normalize(text)
        m = self.matchers

        warning = m.government_warning.match(normalized, text, "")
        rule = category_rule_for(ProductCategory.parse(expected.product_category))

        result = VerificationResult(
            brand_name=m.brand_name.match(normalized, text, expected.brand_name),
            product_type=m.product_type.match(normalized, text, expected.product_type),
            alcohol_content=m.alcohol_content.match(normalized, text, expected.alcohol_content),
            net_contents=m.net_contents.match(normalized, text, expected.net_contents),
            government_warning=warning if warning.matched else None,
            category_check=rule.check(normalized) if rule is not None else None,
            extracted_text=text,
            stages=stages + [VerificationStage.MATCHED],
        )

        logger.debug(
            f"Matches: brand={result.brand_name.matched}, type={result.product_type.matched}, "
            f"alcohol={result.alcohol_content.matched}, net={result.net_contents.matched}, "
            f"warning={warning.matched}"
        )
        return result
