"""
Root conftest.py - Global fixtures and configuration for all test layers.

Test Layers (Top-Down TDD):
    - component/  : Component tests (mocked dependencies)
    - unit/       : Unit tests (pure functions, no I/O)
"""
import os
import sys

import pytest

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

# Keep configuration away from real infrastructure
os.environ.setdefault("ENV", "testing")
os.environ.setdefault("NATS_ENABLED", "false")

# Import shared fixtures from tests/fixtures
from tests.fixtures import make_user_id


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
    config.addinivalue_line("markers", "component: marks tests as component tests")
    config.addinivalue_line("markers", "golden: safety net tests - DO NOT MODIFY")
    config.addinivalue_line("markers", "tdd: tests written ahead of new features")


# =============================================================================
# Test Data
# =============================================================================

@pytest.fixture
def user_id() -> str:
    """Unique user ID"""
    return make_user_id()
