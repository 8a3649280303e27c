"""Shared pytest configuration and fixtures for the frame_logger test suite."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def fake_clock():
    """Manually advanced clock starting at a fixed epoch time."""
    from tests.infrastructure.mocks.collaborator_mocks import FakeClock
    return FakeClock()


@pytest.fixture
def blob_store():
    from frame_logger.stores.memory import InMemoryBlobStore
    return InMemoryBlobStore()


@pytest.fixture
def document_feed():
    from frame_logger.stores.memory import InMemoryDocumentFeed
    return InMemoryDocumentFeed()


@pytest.fixture
def jpeg_bytes() -> bytes:
    """A tiny, valid JPEG."""
    from tests.infrastructure.helpers.generators import make_jpeg
    return make_jpeg()
