"""Shared fixtures: API test client and small document builders."""

from __future__ import annotations

from collections.abc import Iterator

import fitz  # PyMuPDF
import pytest
from fastapi.testclient import TestClient

from voicerag.api.main import app

MANUAL_TEXT = (
    "Returns and refunds.\n\n"
    "Refunds are accepted within 30 days of purchase. "
    "Items must be unused and in their original packaging.\n\n"
    "Shipping.\n\n"
    "Orders ship within two business days. "
    "Express delivery is available at checkout."
)


@pytest.fixture
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_pdf(text: str = MANUAL_TEXT) -> bytes:
    """Build a one-page PDF containing *text*."""
    doc = fitz.open()
    page = doc.new_page()
    page.insert_textbox(fitz.Rect(72, 72, 540, 770), text, fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture
def manual_pdf() -> bytes:
    return make_pdf()
