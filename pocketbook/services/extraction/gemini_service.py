"""
Receipt Extraction using Gemini

DESIGN DECISION: We use a Gemini vision model because:
1. One call turns a photo into structured fields
2. We can ask for JSON output directly
3. It suggests a category in plain words we can match ourselves

This service handles:
1. Rejecting bad files BEFORE any network call (empty, too big, not an image)
2. Sending the image with a fixed prompt
3. Stripping Markdown fences the model sometimes adds anyway

CRITICAL: This service does NOT parse or trust the response.
It returns raw text; the normalizer decides what is usable.
There are no retries here - the user can simply scan again.
"""

import re
from typing import Any, Optional

import google.generativeai as genai

from pocketbook.config import get_settings
from pocketbook.errors import PocketbookError


RECEIPT_PROMPT = """Analyze this receipt image and extract transaction details.
Return ONLY a valid JSON object in this EXACT format:
{
  "amount": 123.45,
  "description": "Store Name",
  "date": "YYYY-MM-DD",
  "category": "Suggested Category Name"
}

Important:
- amount: must be a number (total paid amount from the receipt)
- description: store/merchant name
- date: YYYY-MM-DD format (if not visible on receipt, use today's date)
- category: Suggest a single, general category for the items on the receipt (e.g., "Groceries", "Food", "Shopping").

Return ONLY the JSON object, no markdown, no explanations, no extra text."""

_FENCE = re.compile(r"```(?:json)?\n?", re.IGNORECASE)
_EDGE_BACKTICKS = re.compile(r"^`+|`+$")


class ExtractionError(PocketbookError):
    """Base exception for receipt extraction errors."""

    user_message = "Could not scan the receipt. Please enter the details manually."


class InvalidInputError(ExtractionError):
    """The uploaded file cannot be sent for scanning."""

    user_message = "Please upload an image file."


class ExtractionServiceError(ExtractionError):
    """The AI service failed or timed out."""

    user_message = "Failed to scan receipt. Please try again or enter manually."

    def __init__(self, upstream_message: str):
        self.upstream_message = upstream_message
        super().__init__(f"Receipt extraction failed: {upstream_message}")


def strip_code_fences(text: str) -> str:
    """
    Remove Markdown code fences around a JSON payload.

    Handles ```json ... ```, bare ``` fences and stray backticks
    at either end.
    """
    cleaned = _FENCE.sub("", text).strip()
    return _EDGE_BACKTICKS.sub("", cleaned).strip()


def validate_image(image_bytes: bytes, mime_type: str, max_size_bytes: int) -> None:
    """
    Check the file before it leaves the machine.

    Raises:
        InvalidInputError: empty file, file over the size limit,
            or a MIME type that is not image/*
    """
    if not image_bytes:
        raise InvalidInputError(
            "Receipt image is empty",
            user_message="The selected file is empty. Please choose a receipt photo.",
        )

    if len(image_bytes) > max_size_bytes:
        limit_mb = max_size_bytes / (1024 * 1024)
        raise InvalidInputError(
            f"Receipt image is {len(image_bytes)} bytes, limit is {max_size_bytes}",
            user_message=f"File size should be less than {limit_mb:g}MB",
        )

    if not (mime_type or "").lower().startswith("image/"):
        raise InvalidInputError(f"Unsupported file type: {mime_type!r}")


class GeminiReceiptExtractor:
    """
    Sends receipt photos to Gemini and returns the raw answer.

    IMPORTANT BOUNDARIES:
    1. Validates input locally; never calls the API with a bad file
    2. Makes exactly one call per scan
    3. Returns text only - parsing belongs to the normalizer
    """

    def __init__(self, model: Optional[Any] = None):
        """
        Args:
            model: Anything with an async generate_content_async(contents).
                   If None, a Gemini model is configured from settings.
        """
        self._app_settings = get_settings().app
        self._model = model
        if self._model is None:
            self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        settings = get_settings().gemini
        genai.configure(api_key=settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=settings.model_name,
            generation_config={
                "response_mime_type": "application/json",
                "temperature": settings.temperature,
                "max_output_tokens": settings.max_tokens,
            }
        )

    async def extract(self, image_bytes: bytes, mime_type: str) -> str:
        """
        Extract receipt fields as raw JSON text.

        Returns:
            The model's answer with any code fences removed.

        Raises:
            InvalidInputError: If the file is rejected locally
            ExtractionServiceError: If the model call fails
        """
        validate_image(
            image_bytes,
            mime_type,
            self._app_settings.max_upload_size_bytes,
        )

        try:
            response = await self._model.generate_content_async([
                RECEIPT_PROMPT,
                {"mime_type": mime_type, "data": image_bytes},
            ])
            text = response.text
        except Exception as e:
            raise ExtractionServiceError(str(e)) from e

        return strip_code_fences(text or "")
