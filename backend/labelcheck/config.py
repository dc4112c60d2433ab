"""Application configuration."""

from typing import Optional

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # App settings
    app_name: str = "Label Verification API"
    debug: bool = False
    
    # CORS - Allow all origins for prototype (restrict in production)
    cors_origins: list[str] = ["*"]
    
    # Upload limits
    max_upload_size_mb: int = 15  # Allow large PNG uploads
    allowed_extensions: set = {"png", "jpg", "jpeg", "webp"}
    
    # OCR settings
    ocr_lang: str = "en"
    ocr_max_concurrent: int = 1  # Single OCR at a time (CPU-bound, no benefit from concurrency)
    max_image_dimension: int = 1600  # Downscale before recognition
    ocr_image_timeout_s: Optional[float] = None  # Per-image budget across all variants
    
    # Variant generation
    variant_contrast_factor: float = 1.5
    variant_threshold: Optional[int] = 128  # None disables the thresholded variant
    
    # Bottle heuristic
    bottle_aspect_ratio: float = 1.5  # height / width above this = bottle
    label_region_upscale: float = 2.0
    
    # Matching thresholds
    brand_similarity_threshold: float = 0.85
    product_type_similarity_threshold: float = 0.75  # Longer, more stylized text
    warning_min_phrases: int = 3
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
