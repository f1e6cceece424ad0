"""
Shared fixtures.

No test talks to Gemini or Supabase: the model is a fake object exposing
`generate_content_async`, storage is the in-memory implementation.
"""

from io import BytesIO
from types import SimpleNamespace
from uuid import uuid4

import pytest
from PIL import Image

from bookkeeper.audit import AuditLogger
from bookkeeper.models.session import AuthUser, SessionContext
from bookkeeper.services.extraction import GeminiStatementExtractor
from bookkeeper.services.intake import DocumentIntake
from bookkeeper.services.storage import (
    InMemoryAuditStorage,
    InMemoryDocumentStorage,
    InMemoryProfileStorage,
    InMemoryStatementStorage,
)


FUEL_REPLY = (
    '{"transactions":[{"date":"2024-01-05","description":"FUEL","debitAmount":"100",'
    '"creditAmount":"0","balance":"900","category":"fuel_expense"}]}'
)


class FakeGeminiModel:
    """Stands in for genai.GenerativeModel."""

    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error
        self.calls = []

    async def generate_content_async(self, contents):
        self.calls.append(contents)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


def png_bytes(size=(20, 10)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color="white").save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_data() -> bytes:
    return png_bytes()


@pytest.fixture
def intake() -> DocumentIntake:
    return DocumentIntake(
        max_size_bytes=10 * 1024 * 1024,
        allowed_types=["image/jpeg", "image/jpg", "image/png", "application/pdf"],
    )


@pytest.fixture
def fake_model() -> FakeGeminiModel:
    return FakeGeminiModel(text=FUEL_REPLY)


@pytest.fixture
def extractor(fake_model) -> GeminiStatementExtractor:
    return GeminiStatementExtractor(model=fake_model, period_days=30)


@pytest.fixture
def statement_storage() -> InMemoryStatementStorage:
    return InMemoryStatementStorage()


@pytest.fixture
def document_storage() -> InMemoryDocumentStorage:
    return InMemoryDocumentStorage()


@pytest.fixture
def profile_storage() -> InMemoryProfileStorage:
    return InMemoryProfileStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def session() -> SessionContext:
    return SessionContext(
        user=AuthUser(id=uuid4(), email="owner@example.com"),
        access_token="token",
    )


@pytest.fixture
def make_model():
    """Factory for fake models with a given reply text or error."""
    return FakeGeminiModel


@pytest.fixture
def fuel_reply() -> str:
    return FUEL_REPLY
