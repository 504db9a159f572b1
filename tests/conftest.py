"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from adaptivity.config import get_settings
from adaptivity.models import Policy, Slot
from adaptivity.session import create_session


FIXED_NOW = 1_700_000_000_000.0


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Drop cached settings so environment overrides never leak between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def now():
    """A fixed epoch-ms timestamp."""
    return FIXED_NOW


@pytest.fixture
def session():
    """Provide a blank learner session."""
    return create_session({
        "ids": {"userId": "u1", "courseId": "c1", "lessonId": "L1", "pageId": "P1"},
    })


@pytest.fixture
def policy():
    """Provide a permissive policy."""
    return Policy(version="test")


@pytest.fixture
def remediation_slot():
    """A slot with a remediation variant and a plain one."""
    return Slot.model_validate({
        "id": "slot1",
        "variants": [
            {
                "id": "A",
                "meta": {"modality": "video"},
                "guard": "session.metrics.accEWMA < 0.7",
                "scoreWeights": {"preferLowAcc": 0.8},
            },
            {"id": "B", "meta": {}, "guard": "true"},
        ],
    })
