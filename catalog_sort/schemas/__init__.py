"""Pydantic schemas for catalog payloads and API request/response validation."""

from catalog_sort.schemas.catalog import (
    ImageRef,
    Product,
    ProductImage,
    ProductOption,
    ProductVariant,
)
from catalog_sort.schemas.common import ErrorCode, ErrorDetail, ErrorResponse

__all__ = [
    "ErrorCode",
    "ErrorDetail",
    "ErrorResponse",
    "ImageRef",
    "Product",
    "ProductImage",
    "ProductOption",
    "ProductVariant",
]
