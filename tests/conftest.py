"""
Pytest configuration and fixtures.

Unit tests run against the in-memory fakes in ``tests/fakes.py``.
Tests marked ``integration`` need PostgreSQL with pgvector at
``settings.DATABASE_URL`` and only run with ``--run-integration``.
"""

import pytest

from tests.fakes import (
    FakeEmbedder,
    FakeEntityRecognizer,
    FakeTranscriptFetcher,
    FakeVideoLister,
    InMemoryIndexStore,
)


# ================================
# Pytest Configuration
# ================================

def pytest_addoption(parser):
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="run tests that need a PostgreSQL database with pgvector",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(reason="needs --run-integration")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ================================
# Fakes
# ================================

@pytest.fixture
def store() -> InMemoryIndexStore:
    return InMemoryIndexStore()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def recognizer() -> FakeEntityRecognizer:
    return FakeEntityRecognizer({
        "Barack Obama": ("B-PER", 0.95),
        "Berlin": ("B-LOC", 0.9),
    })


@pytest.fixture
def video_lister() -> FakeVideoLister:
    return FakeVideoLister()


@pytest.fixture
def transcript_fetcher() -> FakeTranscriptFetcher:
    return FakeTranscriptFetcher()
