"""
Pytest configuration for QuickLink tests.

Features:
- Adds the repository root to the Python path so tests can import quicklink
  and the command-line scripts without installing them
- Enables runtime type checking of public methods (must happen before the
  first import of quicklink)
- Provides a fake Go toolchain environment; no Go installation is needed,
  the go command and the linker are always mocked
"""
import os
import sys
from pathlib import Path

os.environ["QUICKLINK_TYPECHECK"] = "1"

import pytest

# Add repository root and this directory to Python path
test_dir = Path(__file__).parent
for path in (test_dir.parent, test_dir):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from quicklink import GoEnv, LinkCache, QuickLinkLogger
from trace_samples import GOCACHE, GOTOOLDIR, make_trace


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "pedantic: pedantic tests that verify edge cases (can be skipped with -m 'not pedantic')"
    )
    config.addinivalue_line(
        "markers", "regression_test: tests for previously fixed bugs"
    )


@pytest.fixture
def go_env():
    """Toolchain environment of a Linux Go installation."""
    return GoEnv({"GOTOOLDIR": GOTOOLDIR, "GOCACHE": GOCACHE, "GOEXE": "", "GOOS": "linux", "GOARCH": "amd64"})


@pytest.fixture
def logger(tmp_path):
    """Debug-level logger writing to a file in the test directory."""
    return QuickLinkLogger(2, tmp_path / "quicklink.log")


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "link.db"


@pytest.fixture
def cache(db_path, logger):
    """Empty link cache in a temporary directory."""
    return LinkCache(db_path, logger)


@pytest.fixture
def trace():
    """Trace of a warm build: every package file is in GOCACHE."""
    return make_trace()
