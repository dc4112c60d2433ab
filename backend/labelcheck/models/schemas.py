"""Pydantic schemas for API requests and responses."""

from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional


class ProductCategoryName(str, Enum):
    """Product category accepted by the API."""
    SPIRITS = "spirits"
    WINE = "wine"
    BEER = "beer"
    UNSET = "unset"


class FieldMatch(BaseModel):
    """Result for a single field check."""
    matched: bool
    detail: str
    confidence: Optional[int] = Field(None, ge=0, le=100)

    class Config:
        json_schema_extra = {
            "example": {
                "matched": True,
                "detail": 'Found "OLD TOM DISTILLERY" on label (Confidence: 95%)',
                "confidence": 95
            }
        }


class CategoryCheck(BaseModel):
    """Result of a category-specific rule (advisory)."""
    rule: str
    matched: bool
    detail: str


class ExpectedFieldsModel(BaseModel):
    """Application data to verify against."""
    brand_name: str = Field(..., min_length=1, description="Expected brand name")
    product_type: str = Field(..., min_length=1, description="Expected class/type (e.g., Kentucky Straight Bourbon Whiskey)")
    alcohol_content: str = Field(..., min_length=1, description="Expected alcohol content (e.g., 45%)")
    product_category: ProductCategoryName = Field(ProductCategoryName.UNSET, description="Beverage category")
    net_contents: str = Field("", description="Expected net contents (e.g., 750 mL); optional")

    class Config:
        json_schema_extra = {
            "example": {
                "brand_name": "OLD TOM DISTILLERY",
                "product_type": "Kentucky Straight Bourbon Whiskey",
                "alcohol_content": "45%",
                "product_category": "spirits",
                "net_contents": "750 mL"
            }
        }


class TextVerificationRequest(BaseModel):
    """Re-verify corrected transcript text without running OCR."""
    text: str = Field(..., description="Label text, e.g. a manually corrected OCR transcript")
    fields: ExpectedFieldsModel


class VerificationResponse(BaseModel):
    """Response for label verification."""
    success: bool
    brand_name: FieldMatch
    product_type: FieldMatch
    alcohol_content: FieldMatch
    net_contents: FieldMatch
    government_warning: Optional[FieldMatch] = None
    category_check: Optional[CategoryCheck] = None
    overall_confidence: int = Field(ge=0, le=100)
    extracted_text: str
    front_text: str
    back_text: str
    processing_note: str
    processing_time_ms: int


class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str

    class Config:
        json_schema_extra = {
            "example": {
                "detail": "No front image provided"
            }
        }


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    ocr_ready: bool
