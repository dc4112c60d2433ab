"""Pydantic models for request/response schemas."""

from .schemas import (
    ProductCategoryName,
    FieldMatch,
    CategoryCheck,
    ExpectedFieldsModel,
    TextVerificationRequest,
    VerificationResponse,
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    "ProductCategoryName",
    "FieldMatch",
    "CategoryCheck",
    "ExpectedFieldsModel",
    "TextVerificationRequest",
    "VerificationResponse",
    "ErrorResponse",
    "HealthResponse",
]
