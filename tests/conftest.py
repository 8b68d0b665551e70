"""
Shared fixtures for the lending back office tests
"""

from decimal import Decimal

import pytest
import pytest_asyncio

from core_lending.config import LendingConfig
from core_lending.documents import DocumentGenerator
from core_lending.storage import InMemoryBackend


class FakeRenderer:
    """Stands in for WeasyPrint; records the HTML it was given"""

    def __init__(self):
        self.rendered = []

    def __call__(self, html: str) -> bytes:
        self.rendered.append(html)
        return b"%PDF-1.7 " + str(len(self.rendered)).encode()


@pytest.fixture
def config():
    """Configuration for the in-memory backend without AI helpers"""
    return LendingConfig(
        backend_type="memory",
        gemini_api_key="",
        default_annual_interest_rate="96",
        overdue_grace_days=0,
        locale="es_ES",
        currency="EUR"
    )


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def documents(config, renderer):
    return DocumentGenerator(config, renderer=renderer)


@pytest_asyncio.fixture
async def backend():
    """In-memory backend at 96% APR"""
    backend = InMemoryBackend(annual_interest_rate=Decimal("96"))
    yield backend
    await backend.close()
