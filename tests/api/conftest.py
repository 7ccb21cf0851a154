"""
API test fixtures.

The app runs against the suite's engine.  Rows seeded through the kernel
fixtures must be committed before a request is made: every request opens
its own session.
"""

import pytest
from fastapi.testclient import TestClient

from harvest_api import create_app
from harvest_config import BatchingConfig, EngineConfig


@pytest.fixture
def api_config():
    return EngineConfig(batching=BatchingConfig(max_units_per_batch=15), source="tests")


@pytest.fixture
def client(clean_db, api_config, deterministic_clock):
    app = create_app(api_config, deterministic_clock)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def seed_units(session, make_units):
    """Record units through the ledger and commit them."""

    def _seed(count: int = 3, product_line: str = "sap", **kwargs) -> list[str]:
        codes = make_units(count, product_line, **kwargs)
        session.commit()
        return codes

    return _seed
