"""Shared fixtures. No test touches the network or a real Gemini key."""

import pytest

from pocketbook.config import get_settings
from pocketbook.models.finance import Category, TransactionType


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "pocketbook.db")


@pytest.fixture
def categories():
    return [
        Category(id="c-food-expense", name="Food", type=TransactionType.EXPENSE),
        Category(id="c-food-income", name="Food", type=TransactionType.INCOME),
        Category(id="c-transport", name="Transport", type=TransactionType.EXPENSE),
        Category(id="c-salary", name="Salary", type=TransactionType.INCOME),
    ]


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeGeminiModel:
    """Stands in for genai.GenerativeModel."""

    def __init__(self, text="{}", error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def generate_content_async(self, contents):
        self.calls.append(contents)
        if self.error is not None:
            raise self.error
        return FakeResponse(self.text)


@pytest.fixture
def make_model():
    return FakeGeminiModel
