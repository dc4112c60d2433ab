"""Shared fakes for OCR-dependent tests."""

from contextlib import contextmanager
from typing import Callable, Dict, List, Optional

import pytest

from labelcheck.services.ocr import OCRBackend, OCRSession, TranscriptCandidate
from labelcheck.services.preprocessing import LabelImage


class FakeSession(OCRSession):
    """Answers from a lookup keyed by image payload, or from a callable."""

    def __init__(self, backend: "FakeOCRBackend"):
        self.backend = backend

    def recognize(self, image: LabelImage) -> TranscriptCandidate:
        self.backend.calls.append(image.data)
        return self.backend.respond(image)


class FakeOCRBackend(OCRBackend):
    """Deterministic OCR backend that records session use."""

    def __init__(
        self,
        texts: Optional[Dict[bytes, str]] = None,
        respond: Optional[Callable[[LabelImage], TranscriptCandidate]] = None,
    ):
        self.texts = texts or {}
        self._respond = respond
        self.calls: List[bytes] = []
        self.sessions_opened = 0
        self.sessions_closed = 0

    def respond(self, image: LabelImage) -> TranscriptCandidate:
        if self._respond is not None:
            return self._respond(image)
        if image.data not in self.texts:
            raise RuntimeError("unreadable image")
        return TranscriptCandidate(text=self.texts[image.data], confidence=80.0)

    @contextmanager
    def session(self):
        self.sessions_opened += 1
        try:
            yield FakeSession(self)
        finally:
            self.sessions_closed += 1


@pytest.fixture
def fake_backend_factory():
    """Build FakeOCRBackend instances."""
    return FakeOCRBackend
