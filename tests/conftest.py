"""
Pytest configuration and fixtures for modindex tests.
"""

import os
import tempfile

import pytest
from tenacity import wait_none

from modindex.core.models import PackageRecord
from modindex.core.store import PackageIndex, StoreBackend, StoreConfig
from modindex.fetcher.base import HttpClient
from tests.fixtures.doubles import FakeClock
from tests.fixtures.sample_data import SAMPLE_PACKAGE_RECORD


@pytest.fixture(autouse=True)
def no_retry_wait(monkeypatch):
    """Retry immediately instead of backing off."""
    monkeypatch.setattr(HttpClient, "wait", wait_none())


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(params=[StoreBackend.MEMORY, StoreBackend.SQLITE], ids=["memory", "sqlite"])
def package_index(request, temp_dir, clock):
    """A package index on each backend, with background cleanup disabled."""
    config = StoreConfig(
        backend=request.param,
        database_path=os.path.join(temp_dir, "index.db"),
        default_ttl=3600,
        cleanup_interval=0,
    )
    index = PackageIndex(config, clock=clock)
    yield index
    index.shutdown()


@pytest.fixture
def sample_record():
    return PackageRecord.from_dict(SAMPLE_PACKAGE_RECORD)
