"""
tests/conftest.py

Shared pytest fixtures used by both unit and integration test suites.
All HTTP fixtures use respx.mock and all files live under tmp_path: no real
network calls are made and /data is never touched.
"""

from __future__ import annotations

import asyncio
import time

import httpx
import pytest
import respx

from config import TargetConfig
from scheduler import create_scheduler

_BASE = "http://grafana.test:3000"


# ---------------------------------------------------------------------------
# HTTP mock fixture: intercepts all httpx calls
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_http():
    """
    Yields a respx router that intercepts all httpx.AsyncClient calls.

    No real network traffic is allowed during tests. Register the server
    endpoints a test needs on the returned router.
    """
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture()
async def http_client():
    """
    Yields a real httpx.AsyncClient instance for use in tests.

    Pair with the mock_http fixture so all requests are intercepted by respx.
    """
    async with httpx.AsyncClient() as client:
        yield client


# ---------------------------------------------------------------------------
# Configuration fixture: fast timings, tmp_path directories
# ---------------------------------------------------------------------------


@pytest.fixture()
def target_config(tmp_path) -> TargetConfig:
    """
    A TargetConfig pointing at the mocked server, with a provisioning tree
    (dashboards/ and datasources/) and a data dir under tmp_path.
    """
    provisioning = tmp_path / "provisioning"
    (provisioning / "dashboards").mkdir(parents=True)
    (provisioning / "datasources").mkdir(parents=True)
    return TargetConfig(
        base_url=_BASE,
        admin_user="admin",
        admin_password="bootstrap-secret",
        provisioning_path=str(provisioning),
        data_dir=str(tmp_path / "data"),
        startup_delay=0,
        health_retries=3,
        health_retry_delay=0,
        debounce_seconds=0.2,
    )


@pytest.fixture()
async def scheduler():
    """Yields a started AsyncIOScheduler bound to the test's event loop."""
    sched = create_scheduler()
    sched.start()
    yield sched
    if sched.running:
        sched.shutdown(wait=False)


# ---------------------------------------------------------------------------
# Async polling helper
# ---------------------------------------------------------------------------


@pytest.fixture()
def wait_until():
    """
    Returns an async helper that polls a predicate until it is true.

    Raises AssertionError if the predicate is still false after `timeout`
    seconds.
    """

    async def _wait(predicate, timeout: float = 3.0, interval: float = 0.02) -> None:
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() > deadline:
                raise AssertionError(f"condition not met within {timeout}s")
            await asyncio.sleep(interval)

    return _wait
