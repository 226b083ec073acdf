"""Receipt extraction package."""

from pocketbook.services.extraction.gemini_service import (
    RECEIPT_PROMPT,
    ExtractionError,
    ExtractionServiceError,
    GeminiReceiptExtractor,
    InvalidInputError,
    strip_code_fences,
    validate_image,
)
from pocketbook.services.extraction.normalizer import (
    MalformedExtractionError,
    normalize_extraction,
)

__all__ = [
    "RECEIPT_PROMPT",
    "ExtractionError",
    "ExtractionServiceError",
    "GeminiReceiptExtractor",
    "InvalidInputError",
    "MalformedExtractionError",
    "normalize_extraction",
    "strip_code_fences",
    "validate_image",
]
