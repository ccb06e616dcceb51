"""
tests/integration/test_daemon.py

End-to-end tests for app.Daemon: health gate, identity provisioning, warm
reload, debounced reloads from the real watchdog observer, and exit codes.
The server is simulated with respx; all files live under tmp_path.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace

import httpx
import pytest

from admin_api.models import ServiceCredential, basic_auth_header
from app import EXIT_FATAL, EXIT_OK, Daemon, DaemonState
from repositories.credential_repository import CredentialRepository

_BASE = "http://grafana.test:3000"


class _Server:
    """respx routes for every endpoint the daemon uses."""

    def __init__(self, mock_http, reload_status=200, database="ok"):
        self.health = mock_http.get(f"{_BASE}/api/health").mock(
            return_value=httpx.Response(200 if database == "ok" else 503, json={"database": database})
        )
        self.create_user = mock_http.post(f"{_BASE}/api/admin/users").mock(
            return_value=httpx.Response(200, json={"id": 17, "message": "User created"})
        )
        self.permissions = mock_http.put(f"{_BASE}/api/admin/users/17/permissions").mock(
            return_value=httpx.Response(200, json={"message": "User permissions updated"})
        )
        self.dashboards = mock_http.post(f"{_BASE}/api/admin/provisioning/dashboards/reload").mock(
            return_value=httpx.Response(reload_status, json={"message": "Dashboards config reloaded"})
        )
        self.datasources = mock_http.post(f"{_BASE}/api/admin/provisioning/datasources/reload").mock(
            return_value=httpx.Response(reload_status, json={"message": "Datasources config reloaded"})
        )


async def _no_sleep(_delay: float) -> None:
    return None


# ---------------------------------------------------------------------------
# Scenario A: fresh start
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_fresh_start_bootstraps_and_warm_reloads(mock_http, target_config, wait_until):
    server = _Server(mock_http)
    async with httpx.AsyncClient() as client:
        daemon = Daemon(target_config, client, sleep=_no_sleep)
        await daemon.start()
        try:
            assert daemon.state is DaemonState.WATCHING
            await wait_until(lambda: server.dashboards.call_count == 1 and server.datasources.call_count == 1)
            await asyncio.sleep(0.4)
        finally:
            daemon.shutdown()

    assert server.create_user.call_count == 1
    assert server.permissions.call_count == 1
    assert server.dashboards.call_count == 1
    assert server.datasources.call_count == 1

    persisted = CredentialRepository(target_config.credential_file).load()
    assert persisted == daemon.credential
    assert json.loads(server.create_user.calls.last.request.content) == persisted.to_dict()

    service_auth = basic_auth_header(persisted.login, persisted.password)
    assert server.dashboards.calls.last.request.headers["Authorization"] == service_auth
    assert server.datasources.calls.last.request.headers["Authorization"] == service_auth
    assert daemon.state is DaemonState.SHUTTING_DOWN


# ---------------------------------------------------------------------------
# Scenario B: existing credential, burst of dashboard writes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_existing_credential_and_dashboard_burst(mock_http, target_config, wait_until, tmp_path):
    stored = ServiceCredential(email="n@x", login="reloader-n", password="pw")
    CredentialRepository(target_config.credential_file).save(stored)
    server = _Server(mock_http)
    config = replace(target_config, debounce_seconds=0.6)

    async with httpx.AsyncClient() as client:
        daemon = Daemon(config, client, sleep=_no_sleep)
        await daemon.start()
        try:
            await wait_until(lambda: server.dashboards.call_count == 1 and server.datasources.call_count == 1)
            # Give the observer thread time to set up its watches.
            await asyncio.sleep(0.3)

            dashboards_dir = tmp_path / "provisioning" / "dashboards"
            for name in ("one.json", "two.json", "three.json"):
                (dashboards_dir / name).write_text("{}", encoding="utf-8")
                await asyncio.sleep(0.15)

            await wait_until(lambda: server.dashboards.call_count == 2, timeout=5.0)
            await asyncio.sleep(0.8)
        finally:
            daemon.shutdown()

    assert server.create_user.call_count == 0
    assert server.permissions.call_count == 0
    assert daemon.credential == stored
    # One warm reload plus exactly one coalesced reload for the burst
    assert server.dashboards.call_count == 2
    assert server.datasources.call_count == 1
    assert server.dashboards.calls.last.request.headers["Authorization"] == stored.authorization_header()


# ---------------------------------------------------------------------------
# Scenario C: reload endpoint failing
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_failing_reloads_keep_the_daemon_running(mock_http, target_config, wait_until, caplog):
    server = _Server(mock_http, reload_status=500)
    async with httpx.AsyncClient() as client:
        daemon = Daemon(target_config, client, sleep=_no_sleep)
        await daemon.start()
        try:
            await wait_until(lambda: server.dashboards.call_count == 1 and server.datasources.call_count == 1)
            assert daemon.state is DaemonState.WATCHING

            daemon.dispatcher.on_event("modified", f"{target_config.provisioning_path}/dashboards/a.json")
            await wait_until(lambda: server.dashboards.call_count == 2)
            assert daemon.state is DaemonState.WATCHING
            assert daemon.watcher.is_watching
        finally:
            daemon.shutdown()

    warnings = [r for r in caplog.records if r.levelname == "WARNING" and "Reload failed" in r.getMessage()]
    assert len(warnings) >= 3


# ---------------------------------------------------------------------------
# run(): exit codes
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_run_returns_ok_after_stop_request(mock_http, target_config):
    server = _Server(mock_http)
    async with httpx.AsyncClient() as client:
        daemon = Daemon(target_config, client, sleep=_no_sleep)
        loop = asyncio.get_running_loop()
        loop.call_later(0.5, daemon.request_stop, "signal SIGTERM")
        code = await daemon.run(install_signal_handlers=False)

    assert code == EXIT_OK
    assert daemon.state is DaemonState.SHUTTING_DOWN
    assert server.create_user.call_count == 1


@pytest.mark.asyncio
async def test_run_stop_during_startup_exits_ok(mock_http, target_config):
    async def slow_sleep(_delay: float) -> None:
        await asyncio.sleep(10)

    config = replace(target_config, startup_delay=30)
    catch_all = mock_http.route().mock(return_value=httpx.Response(200, json={}))
    async with httpx.AsyncClient() as client:
        daemon = Daemon(config, client, sleep=slow_sleep)
        asyncio.get_running_loop().call_later(0.1, daemon.request_stop, "signal SIGINT")
        code = await daemon.run(install_signal_handlers=False)

    assert code == EXIT_OK
    assert catch_all.call_count == 0


@pytest.mark.asyncio
async def test_run_exits_fatal_when_database_is_broken(mock_http, target_config, caplog):
    server = _Server(mock_http, database="failing")
    async with httpx.AsyncClient() as client:
        daemon = Daemon(target_config, client, sleep=_no_sleep)
        code = await daemon.run(install_signal_handlers=False)

    assert code == EXIT_FATAL
    assert server.health.call_count == 1
    assert server.create_user.call_count == 0
    assert "awaiting_health" in caplog.text


@pytest.mark.asyncio
async def test_run_exits_fatal_when_health_never_recovers(mock_http, target_config):
    health = mock_http.get(f"{_BASE}/api/health").mock(side_effect=httpx.ConnectError("refused"))
    async with httpx.AsyncClient() as client:
        daemon = Daemon(target_config, client, sleep=_no_sleep)
        code = await daemon.run(install_signal_handlers=False)

    assert code == EXIT_FATAL
    assert health.call_count == target_config.health_retries


@pytest.mark.asyncio
async def test_run_exits_fatal_on_corrupt_credential_file(mock_http, target_config, tmp_path):
    server = _Server(mock_http)
    (tmp_path / "data").mkdir()
    (tmp_path / "data" / "serviceaccount.json").write_text("{", encoding="utf-8")

    async with httpx.AsyncClient() as client:
        daemon = Daemon(target_config, client, sleep=_no_sleep)
        code = await daemon.run(install_signal_handlers=False)

    assert code == EXIT_FATAL
    assert daemon.state is DaemonState.SHUTTING_DOWN
    assert server.create_user.call_count == 0
    assert server.dashboards.call_count == 0


@pytest.mark.asyncio
async def test_run_exits_fatal_when_provisioning_dir_missing(mock_http, target_config, tmp_path):
    _Server(mock_http)
    config = replace(target_config, provisioning_path=str(tmp_path / "nope"))

    async with httpx.AsyncClient() as client:
        daemon = Daemon(config, client, sleep=_no_sleep)
        code = await daemon.run(install_signal_handlers=False)

    assert code == EXIT_FATAL


@pytest.mark.asyncio
async def test_start_twice_is_rejected(mock_http, target_config):
    _Server(mock_http)
    async with httpx.AsyncClient() as client:
        daemon = Daemon(target_config, client, sleep=_no_sleep)
        await daemon.start()
        try:
            with pytest.raises(RuntimeError):
                await daemon.start()
        finally:
            daemon.shutdown()
