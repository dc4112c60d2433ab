"""OCR backends and best-transcript selection.

The rest of the pipeline only sees the OCRBackend contract:
- `session()` acquires the engine for one label image and releases it on exit
- `session.recognize(image)` returns a TranscriptCandidate (text + 0-100 confidence)

EasyOCRBackend is the production binding (EasyOCR on CPU, one warm reader per
process, sessions gated by a semaphore). Tests plug in deterministic fakes.
"""

import cv2
import numpy as np
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Sequence
from dataclasses import dataclass
import logging
import threading
import time
import unicodedata
import re

from .preprocessing import ImageVariant, LabelImage
from ..config import get_settings

logger = logging.getLogger(__name__)


class OCRUnavailableError(RuntimeError):
    """The OCR engine could not be started."""


@dataclass(frozen=True)
class TranscriptCandidate:
    """Text recognized from one image variant."""
    text: str
    confidence: float  # 0-100

    @classmethod
    def empty(cls) -> "TranscriptCandidate":
        """Result used when no recognition succeeded."""
        return cls(text="", confidence=0.0)

    def beats(self, other: "TranscriptCandidate") -> bool:
        """
        True when this candidate should replace `other` as the best.

        Longer text wins even at lower confidence, and higher confidence wins
        even with shorter text: more extracted signal is preferred.
        """
        return len(self.text) > len(other.text) or self.confidence > other.confidence


class OCRSession(ABC):
    """Engine handle valid inside one `OCRBackend.session()` block."""

    @abstractmethod
    def recognize(self, image: LabelImage) -> TranscriptCandidate:
        raise NotImplementedError


class OCRBackend(ABC):
    """Pluggable OCR capability."""

    def initialize(self) -> bool:
        """Load the engine ahead of first use; True when ready."""
        return True

    @property
    def is_ready(self) -> bool:
        return True

    @abstractmethod
    @contextmanager
    def session(self) -> Iterator[OCRSession]:
        raise NotImplementedError


@dataclass
class OCRBox:
    """Represents a detected text box with position and confidence."""
    text: str
    confidence: float
    bbox: List[List[int]]  # [[x1,y1], [x2,y2], [x3,y3], [x4,y4]]

    @property
    def top(self) -> int:
        """Top Y coordinate (minimum Y)."""
        return min(p[1] for p in self.bbox)

    @property
    def bottom(self) -> int:
        """Bottom Y coordinate (maximum Y)."""
        return max(p[1] for p in self.bbox)

    @property
    def left(self) -> int:
        """Left X coordinate (minimum X)."""
        return min(p[0] for p in self.bbox)

    @property
    def height(self) -> int:
        """Height of the bounding box."""
        return self.bottom - self.top


def normalize_ocr_text(text: str) -> str:
    """
    Normalize OCR text output.
    - Unicode NFKC normalization
    - Collapse whitespace
    - Strip leading/trailing whitespace
    """
    normalized = unicodedata.normalize('NFKC', text)
    normalized = re.sub(r'\s+', ' ', normalized)
    return normalized.strip()


def layout_text(boxes: Sequence[OCRBox]) -> str:
    """
    Join boxes in reading order: one output line per text line, left-to-right.

    Line height comes from the median box height so word order survives
    mixed font sizes.
    """
    if not boxes:
        return ""

    line_h = int(np.median([b.height for b in boxes]))
    line_h = max(12, min(line_h, 60))  # Clamp to reasonable range

    lines = {}
    for box in sorted(boxes, key=lambda b: (b.top // line_h, b.left)):
        lines.setdefault(box.top // line_h, []).append(box.text)

    return "\n".join(" ".join(words) for _, words in sorted(lines.items()))


class _EasyOCRSession(OCRSession):
    """Recognition against the shared EasyOCR reader."""

    def __init__(self, reader, max_dimension: int):
        self._reader = reader
        self._max_dimension = max_dimension

    def recognize(self, image: LabelImage) -> TranscriptCandidate:
        array = cv2.imdecode(np.frombuffer(image.data, dtype=np.uint8), cv2.IMREAD_COLOR)
        if array is None:
            raise ValueError("Image payload could not be decoded")

        # Downscale once (detection cost grows with pixel count)
        h, w = array.shape[:2]
        scale = min(1.0, self._max_dimension / max(h, w))
        if scale < 1.0:
            new_w, new_h = int(w * scale), int(h * scale)
            array = cv2.resize(array, (new_w, new_h), interpolation=cv2.INTER_AREA)
            logger.debug(f"Downscaled from {w}x{h} to {new_w}x{new_h}")

        results = self._reader.readtext(
            array,
            decoder='greedy',  # Faster than beamsearch
            batch_size=1,      # Predictable CPU usage
            paragraph=False,   # Keep boxes; layout_text orders them
            detail=1
        )

        boxes = []
        for bbox_points, text, conf in results or []:
            text = normalize_ocr_text(text)
            if not text:
                continue
            boxes.append(OCRBox(
                text=text,
                confidence=float(conf),
                bbox=[[int(p[0]), int(p[1])] for p in bbox_points]
            ))

        if not boxes:
            return TranscriptCandidate.empty()

        avg_conf = sum(b.confidence for b in boxes) / len(boxes)
        return TranscriptCandidate(text=layout_text(boxes), confidence=avg_conf * 100)


class EasyOCRBackend(OCRBackend):
    """EasyOCR wrapper: one reader per process, sessions limited by a semaphore."""

    _instance: Optional["EasyOCRBackend"] = None
    _reader = None
    _initialized = False
    _lock = threading.Lock()
    _semaphore: Optional[threading.Semaphore] = None

    def __new__(cls):
        """Singleton pattern to reuse OCR engine."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        self.settings = get_settings()
        # Initialize semaphore for concurrency control
        if self._semaphore is None:
            EasyOCRBackend._semaphore = threading.Semaphore(self.settings.ocr_max_concurrent)

    def initialize(self) -> bool:
        """
        Initialize OCR engine. Call on app startup.
        Thread-safe initialization.

        Returns:
            True if initialization successful
        """
        with self._lock:
            if self._initialized:
                return True

            try:
                import easyocr
                import torch
                import os

                # Set thread limits for CPU inference
                num_threads = int(os.environ.get('TORCH_NUM_THREADS', min(4, os.cpu_count() or 2)))
                torch.set_num_threads(num_threads)

                logger.info(f"Initializing EasyOCR engine with {num_threads} threads...")

                model_dir = os.environ.get('EASYOCR_MODULE_PATH')

                EasyOCRBackend._reader = easyocr.Reader(
                    [self.settings.ocr_lang],
                    gpu=False,
                    model_storage_directory=model_dir,
                    verbose=False
                )

                EasyOCRBackend._initialized = True
                logger.info("EasyOCR initialized successfully")
                return True

            except Exception as e:
                logger.exception(f"Failed to initialize EasyOCR: {e}")
                return False

    @property
    def is_ready(self) -> bool:
        """Check if OCR engine is ready."""
        return self._initialized and self._reader is not None

    @contextmanager
    def session(self) -> Iterator[OCRSession]:
        """Hold the engine for one label image; released on exit, even on error."""
        if not self.is_ready and not self.initialize():
            raise OCRUnavailableError("OCR engine not initialized")

        self._semaphore.acquire()
        try:
            yield _EasyOCRSession(self._reader, self.settings.max_image_dimension)
        finally:
            self._semaphore.release()


class BestTranscriptSelector:
    """Runs OCR over every variant of one image and keeps the best transcript."""

    def __init__(
        self,
        timeout_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout_s = timeout_s
        self.clock = clock

    def select_best(
        self,
        variants: Sequence[ImageVariant],
        backend: OCRBackend,
    ) -> TranscriptCandidate:
        """
        Recognize each variant in order within a single session.

        Never raises: failed recognitions are skipped, and if nothing succeeded
        the empty transcript is returned. With a timeout, remaining variants are
        skipped once the deadline passes and the best so far is kept.
        """
        best = TranscriptCandidate.empty()
        deadline = self.clock() + self.timeout_s if self.timeout_s is not None else None
        attempted = 0

        try:
            with backend.session() as session:
                for variant in variants:
                    if deadline is not None and self.clock() >= deadline:
                        logger.warning(
                            f"OCR timeout after {attempted}/{len(variants)} variants, keeping best so far"
                        )
                        break

                    attempted += 1
                    try:
                        candidate = session.recognize(variant.image)
                    except Exception as e:
                        logger.warning(f"OCR attempt on '{variant.kind.value}' variant failed: {e}")
                        continue

                    logger.debug(
                        f"OCR '{variant.kind.value}': {len(candidate.text)} chars, "
                        f"confidence={candidate.confidence:.1f}"
                    )
                    if candidate.beats(best):
                        best = candidate
        except Exception as e:
            logger.error(f"OCR session failed: {e}")

        logger.info(f"Best transcript: {len(best.text)} chars, confidence={best.confidence:.1f}")
        return best
