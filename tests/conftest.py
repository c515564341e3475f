"""
Pytest configuration and shared fixtures for the sexpkit tests.
"""

import sys
import pytest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
from sexpkit.derive.engine import Deriver
from sexpkit.registry.exn import ExceptionRegistry
from sexpkit.sexp.parser import Parser
from sexpkit.utils.flags import flags


# =============================================================================
# Session-scoped fixtures
# =============================================================================

@pytest.fixture(scope="session")
def parser():
    """Parser shared across all tests (stateless per call)."""
    return Parser("<test>")


# =============================================================================
# Function-scoped fixtures
# =============================================================================

@pytest.fixture
def deriver():
    """Fresh deriver per test so cache assertions see an empty cache."""
    return Deriver()


@pytest.fixture
def registry():
    """Fresh exception registry; the process-wide one is never touched."""
    return ExceptionRegistry()


@pytest.fixture(autouse=True)
def reset_flags():
    """Restore the process-wide conversion switches after each test."""
    with flags.override(
        read_old_option_format=True,
        write_old_option_format=False,
        check_extra_fields=True,
    ):
        yield flags


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers for test organization."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
