"""Label OCR verification engine."""

__version__ = "1.0.0"
