"""
Test configuration and fixtures for SlotQuorum tests
"""

import asyncio

import pytest

from sq_core.monitoring.metrics import reset_metrics
from tests.core.mock_client import FakeNodeClient, make_block

# Settings read from the environment; cleared so the host shell never leaks in
SETTINGS_ENV_VARS = [
    "PRIVATE_ENDPOINTS",
    "SLOT_OVERRIDE",
    "RPC_TIMEOUT_SECONDS",
    "QUERY_TIMEOUT_SECONDS",
    "MAX_CONCURRENCY",
    "RPC_COMMITMENT",
    "TRANSACTION_ENCODING",
    "LOG_LEVEL",
    "METRICS_FILE",
    "SLOTQUORUM_CONFIG_FILE",
]

FIVE_ENDPOINTS = [
    "http://node-a:8899",
    "http://node-b:8899",
    "http://node-c:8899",
    "http://node-d:8899",
    "http://node-e:8899",
]


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """No settings env vars and no stray .env file for any test."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield


@pytest.fixture(autouse=True)
def fresh_metrics():
    """Start every test with an empty metrics registry."""
    reset_metrics()
    yield


@pytest.fixture
def endpoints():
    """Five endpoints, the size used by most round tests"""
    return list(FIVE_ENDPOINTS)


@pytest.fixture
def agreeing_client(endpoints):
    """Four endpoints at slot 100, one lagging at 99, same block everywhere."""
    block = make_block("9xQeWvG816bUx9EPjHmaT23yvVM2ZWbrrpZb9PusVFin", parent_slot=99)
    slots = {endpoint: 100 for endpoint in endpoints}
    slots[endpoints[-1]] = 99
    return FakeNodeClient(
        slots=slots,
        blocks={endpoint: block for endpoint in endpoints},
        heights={endpoint: 90 for endpoint in endpoints},
    )


# Mark all async tests
def pytest_collection_modifyitems(config, items):
    """Automatically mark async tests"""
    for item in items:
        if asyncio.iscoroutinefunction(item.function):
            item.add_marker(pytest.mark.asyncio)


# Setup test environment
def pytest_configure(config):
    """Configure test environment"""
    # Register custom markers
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line("markers", "integration: mark test as integration test")
