"""Tests for the Gemini extraction client (fake model, no network)."""

import asyncio
import pytest

from pocketbook.services.extraction import (
    RECEIPT_PROMPT,
    ExtractionServiceError,
    GeminiReceiptExtractor,
    InvalidInputError,
    strip_code_fences,
    validate_image,
)


IMAGE = b"\xff\xd8\xff\xe0fake-jpeg"


class TestStripCodeFences:

    @pytest.mark.parametrize("raw", [
        '```json\n{"amount": 1}\n```',
        '```JSON\n{"amount": 1}```',
        '```\n{"amount": 1}\n```',
        '`{"amount": 1}`',
        '  {"amount": 1}  ',
    ])
    def test_strips(self, raw):
        assert strip_code_fences(raw) == '{"amount": 1}'


class TestValidateImage:

    def test_empty_file(self):
        with pytest.raises(InvalidInputError):
            validate_image(b"", "image/png", 1024)

    def test_too_large(self):
        limit = 5 * 1024 * 1024
        with pytest.raises(InvalidInputError) as exc:
            validate_image(b"x" * (limit + 1), "image/png", limit)
        assert exc.value.user_message == "File size should be less than 5MB"

    def test_exactly_at_limit_is_allowed(self):
        validate_image(b"x" * 10, "image/png", 10)

    @pytest.mark.parametrize("mime", ["application/pdf", "text/plain", "", None])
    def test_not_an_image(self, mime):
        with pytest.raises(InvalidInputError) as exc:
            validate_image(IMAGE, mime, 1024)
        assert exc.value.user_message == "Please upload an image file."


class TestGeminiReceiptExtractor:

    def test_returns_unfenced_text(self, make_model):
        model = make_model('```json\n{"amount": 12.5}\n```')
        extractor = GeminiReceiptExtractor(model=model)

        text = asyncio.run(extractor.extract(IMAGE, "image/jpeg"))

        assert text == '{"amount": 12.5}'
        assert len(model.calls) == 1
        prompt, image = model.calls[0]
        assert prompt == RECEIPT_PROMPT
        assert image == {"mime_type": "image/jpeg", "data": IMAGE}

    def test_rejects_before_calling_model(self, make_model):
        model = make_model()
        extractor = GeminiReceiptExtractor(model=model)

        with pytest.raises(InvalidInputError):
            asyncio.run(extractor.extract(IMAGE, "application/pdf"))
        assert model.calls == []

    def test_upload_limit_comes_from_settings(self, make_model, monkeypatch):
        monkeypatch.setenv("MAX_UPLOAD_SIZE_MB", "1")
        model = make_model()
        extractor = GeminiReceiptExtractor(model=model)

        with pytest.raises(InvalidInputError):
            asyncio.run(extractor.extract(b"x" * (1024 * 1024 + 1), "image/png"))
        assert model.calls == []

    def test_model_failure_is_wrapped(self, make_model):
        model = make_model(error=RuntimeError("quota exceeded"))
        extractor = GeminiReceiptExtractor(model=model)

        with pytest.raises(ExtractionServiceError) as exc:
            asyncio.run(extractor.extract(IMAGE, "image/png"))
        assert exc.value.upstream_message == "quota exceeded"
        assert len(model.calls) == 1
