"""
Pytest configuration and shared fixtures.

This file is automatically loaded by pytest and provides
fixtures and configuration that can be used across all tests.
"""

import hashlib
from unittest.mock import AsyncMock, MagicMock

import pytest

from lecture_qa.services.retrieval import passages_from_segments

# Configure pytest-asyncio
pytest_plugins = ("pytest_asyncio",)


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (need a running Ollama)")
    config.addinivalue_line("markers", "slow: Slow running tests")


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    """Apply a timeout to all tests except those marked as slow."""
    for item in items:
        if "slow" not in item.keywords:
            item.add_marker(pytest.mark.timeout(30))


# ============================================================================
# Mock Service Fixtures
# ============================================================================


@pytest.fixture
def mock_context() -> MagicMock:
    """Create a mock context."""
    context = MagicMock()
    context.is_shutting_down.return_value = False
    return context


@pytest.fixture
def mock_services() -> MagicMock:
    """Create a mock services manager with logging service."""
    services = MagicMock()
    services.logging_service = AsyncMock()
    services.logging_service.info = AsyncMock()
    services.logging_service.debug = AsyncMock()
    services.logging_service.warning = AsyncMock()
    services.logging_service.error = AsyncMock()
    return services


# ============================================================================
# Retrieval Fixtures
# ============================================================================


def keyword_vector(text: str, dim: int = 64) -> list[float]:
    """Deterministic bag-of-words vector: one bucket per hashed lowercase word."""
    vector = [0.0] * dim
    for word in text.lower().split():
        word = word.strip(".,?!:;")
        if not word:
            continue
        bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % dim
        vector[bucket] += 1.0
    return vector


@pytest.fixture
def keyword_embedder() -> AsyncMock:
    """Async embedder backed by `keyword_vector`."""

    async def embed(text: str) -> list[float]:
        return keyword_vector(text)

    return AsyncMock(side_effect=embed)


@pytest.fixture
def sample_segments() -> list[dict]:
    """Three five-second transcript segments at 0, 5000 and 10000 ms."""
    return [
        {"text": "Welcome to the lecture on sorting algorithms.", "offset": 0, "duration": 5000},
        {"text": "Merge sort splits the list in half.", "offset": 5000, "duration": 5000},
        {
            "text": "The main topic is heap sort and priority queues.",
            "offset": 10000,
            "duration": 5000,
        },
    ]


@pytest.fixture
def sample_passages(sample_segments):
    return passages_from_segments(sample_segments)
