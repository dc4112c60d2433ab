"""Image preprocessing: build OCR-friendly variants of a label photo.

A single photo rarely OCRs well under every condition, so each label is
expanded into a fixed set of candidates:
- original (always first, the fallback when everything else fails)
- enhanced (normalize + sharpen for flat lighting)
- high-contrast (linear stretch for faded or embossed text)
- thresholded (binary, for printed text on textured stock)
- edge-enhanced (high-pass kernel for curved/glossy bottles)
- inverted (light text on dark labels)

Tall images are treated as bottle shots and cropped to the middle label band
before variants are built.
"""

import cv2
import numpy as np
from PIL import Image
import io
from typing import Callable, List, Optional, Sequence, Tuple
from dataclasses import dataclass
from enum import Enum
import logging

from ..config import get_settings

logger = logging.getLogger(__name__)


# 3x3 high-pass kernel, row-major
EDGE_KERNEL = (-1, -1, -1, -1, 8, -1, -1, -1, -1)

_FROM_SETTINGS = object()


@dataclass(frozen=True)
class LabelImage:
    """Encoded image payload as received, plus dimensions when known."""
    data: bytes
    width: Optional[int] = None
    height: Optional[int] = None

    @classmethod
    def from_bytes(cls, data: bytes) -> "LabelImage":
        """Wrap raw bytes, probing dimensions with PIL when possible."""
        try:
            with Image.open(io.BytesIO(data)) as img:
                width, height = img.size
        except Exception:
            return cls(data=data)
        return cls(data=data, width=width, height=height)


class VariantKind(str, Enum):
    """Transform that produced an image variant."""
    ORIGINAL = "original"
    ENHANCED = "enhanced"
    HIGH_CONTRAST = "high-contrast"
    THRESHOLDED = "thresholded"
    EDGE_ENHANCED = "edge-enhanced"
    INVERTED = "inverted"


@dataclass(frozen=True)
class ImageVariant:
    """A preprocessed version of a label image."""
    kind: VariantKind
    image: LabelImage


@dataclass(frozen=True)
class LabelRegion:
    """Pixel rectangle expected to hold the label on a bottle shot."""
    left: int
    top: int
    width: int
    height: int


class ImageTransformer:
    """OpenCV-backed image operations. Every method may raise on bad input."""

    def load(self, image: LabelImage) -> np.ndarray:
        """Decode payload to a BGR array."""
        # Use PIL to handle various formats, then convert to OpenCV
        pil_image = Image.open(io.BytesIO(image.data))

        # Convert to RGB if necessary
        if pil_image.mode != "RGB":
            pil_image = pil_image.convert("RGB")

        array = np.array(pil_image)
        return cv2.cvtColor(array, cv2.COLOR_RGB2BGR)

    def encode(self, array: np.ndarray) -> LabelImage:
        """Encode to PNG (lossless, keeps thin strokes intact)."""
        ok, buffer = cv2.imencode(".png", array)
        if not ok:
            raise ValueError("PNG encoding failed")
        height, width = array.shape[:2]
        return LabelImage(data=buffer.tobytes(), width=width, height=height)

    def grayscale(self, array: np.ndarray) -> np.ndarray:
        if len(array.shape) == 2:
            return array
        return cv2.cvtColor(array, cv2.COLOR_BGR2GRAY)

    def normalize(self, array: np.ndarray) -> np.ndarray:
        """Stretch intensities to the full 0-255 range."""
        return cv2.normalize(array, None, 0, 255, cv2.NORM_MINMAX)

    def sharpen(self, array: np.ndarray, sigma: float = 1.0) -> np.ndarray:
        """Unsharp mask; larger sigma = stronger edges."""
        gaussian = cv2.GaussianBlur(array, (0, 0), sigma)
        return cv2.addWeighted(array, 1.5, gaussian, -0.5, 0)

    def linear(self, array: np.ndarray, a: float, b: float) -> np.ndarray:
        """out = a * in + b, clipped to 8 bits."""
        return np.clip(array.astype(np.float32) * a + b, 0, 255).astype(np.uint8)

    def threshold(self, array: np.ndarray, cutoff: int) -> np.ndarray:
        """Pixels >= cutoff become white, the rest black."""
        return np.where(array >= cutoff, 255, 0).astype(np.uint8)

    def convolve(self, array: np.ndarray, kernel: Sequence[float]) -> np.ndarray:
        """Apply a 3x3 kernel, clamping the response to 8 bits."""
        matrix = np.array(kernel, dtype=np.float32).reshape(3, 3)
        response = cv2.filter2D(array.astype(np.float32), -1, matrix)
        return np.clip(response, 0, 255).astype(np.uint8)

    def negate(self, array: np.ndarray) -> np.ndarray:
        return cv2.bitwise_not(array)

    def crop_resize(self, array: np.ndarray, region: LabelRegion, scale: float) -> np.ndarray:
        """Crop to region, then upsample by scale."""
        height, width = array.shape[:2]
        x1, y1 = region.left, region.top
        x2, y2 = region.left + region.width, region.top + region.height
        if x1 < 0 or y1 < 0 or x2 > width or y2 > height or region.width <= 0 or region.height <= 0:
            raise ValueError(f"Region {region} outside {width}x{height} image")

        cropped = array[y1:y2, x1:x2]
        new_size = (int(region.width * scale), int(region.height * scale))
        return cv2.resize(cropped, new_size, interpolation=cv2.INTER_CUBIC)


def detect_bottle_label(image: LabelImage, aspect_ratio: float = 1.5) -> Optional[LabelRegion]:
    """
    Coarse bottle heuristic: tall images are bottle shots.

    Returns the middle band (left 20-80%, top 30-70%) where the front label
    usually sits, or None when the image does not look like a bottle.
    """
    width, height = image.width, image.height
    if not width or not height:
        return None

    if height / width <= aspect_ratio:
        return None

    return LabelRegion(
        left=round(width * 0.2),
        top=round(height * 0.3),
        width=round(width * 0.6),
        height=round(height * 0.4),
    )


def extract_label_region(
    image: LabelImage,
    region: LabelRegion,
    transformer: Optional[ImageTransformer] = None,
    scale: float = 2.0,
) -> LabelImage:
    """Crop the label band and upscale it for small text. Falls back to the full image."""
    transformer = transformer or ImageTransformer()
    try:
        array = transformer.load(image)
        cropped = transformer.crop_resize(array, region, scale)
        return transformer.encode(transformer.sharpen(cropped))
    except Exception as e:
        logger.warning(f"Label region extraction failed, using full image: {e}")
        return image


class ImageVariantGenerator:
    """Produces the fixed set of OCR candidate images for one label."""

    def __init__(
        self,
        transformer: Optional[ImageTransformer] = None,
        contrast: Optional[float] = None,
        threshold=_FROM_SETTINGS,
    ):
        self.settings = get_settings()
        self.transformer = transformer or ImageTransformer()
        self.contrast = contrast if contrast is not None else self.settings.variant_contrast_factor
        # None disables the thresholded variant
        self.threshold = self.settings.variant_threshold if threshold is _FROM_SETTINGS else threshold

    def prepare(self, image: LabelImage) -> LabelImage:
        """Crop to the label band when the photo looks like a whole bottle."""
        region = detect_bottle_label(image, self.settings.bottle_aspect_ratio)
        if region is None:
            return image

        logger.info(f"Bottle shot detected ({image.width}x{image.height}), extracting label region")
        return extract_label_region(
            image, region, self.transformer, self.settings.label_region_upscale
        )

    def generate(self, image: LabelImage) -> List[ImageVariant]:
        """
        Build variants in fixed order, original first.

        A transform that fails only drops its own variant; an image that cannot
        be decoded at all yields just the original.
        """
        variants = [ImageVariant(VariantKind.ORIGINAL, image)]

        try:
            source = self.transformer.load(image)
        except Exception as e:
            logger.warning(f"Could not decode image for preprocessing: {e}")
            return variants

        for kind, recipe in self._recipes():
            try:
                variants.append(ImageVariant(kind, self.transformer.encode(recipe(source))))
            except Exception as e:
                logger.warning(f"Variant '{kind.value}' skipped: {e}")

        logger.debug(f"Generated variants: {[v.kind.value for v in variants]}")
        return variants

    def _recipes(self) -> List[Tuple[VariantKind, Callable[[np.ndarray], np.ndarray]]]:
        t = self.transformer
        contrast = self.contrast

        recipes = [
            (VariantKind.ENHANCED,
             lambda img: t.sharpen(t.normalize(t.grayscale(img)))),
            (VariantKind.HIGH_CONTRAST,
             lambda img: t.sharpen(t.linear(t.grayscale(img), contrast, -(128 * (contrast - 1))), sigma=2.0)),
        ]

        if self.threshold is not None:
            cutoff = self.threshold
            recipes.append(
                (VariantKind.THRESHOLDED, lambda img: t.threshold(t.grayscale(img), cutoff))
            )

        recipes.extend([
            (VariantKind.EDGE_ENHANCED,
             lambda img: t.normalize(t.convolve(t.grayscale(img), EDGE_KERNEL))),
            (VariantKind.INVERTED,
             lambda img: t.normalize(t.negate(t.grayscale(img)))),
        ])
        return recipes


def validate_upload(image_bytes: bytes, filename: str) -> Tuple[bool, str]:
    """
    Validate an upload before it enters the pipeline.

    Only the extension and size are checked; unreadable pixels are left to the
    OCR pipeline, which degrades to an empty transcript.

    Returns:
        Tuple of (is_valid, error_message)
    """
    settings = get_settings()

    # Check file extension
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext not in settings.allowed_extensions:
        allowed = ", ".join(sorted(settings.allowed_extensions)).upper()
        return False, f"Invalid file type. Allowed formats: {allowed}"

    size_mb = len(image_bytes) / (1024 * 1024)
    if size_mb > settings.max_upload_size_mb:
        return False, f"Image exceeds {settings.max_upload_size_mb}MB upload limit. Please resize or compress."

    return True, ""
