"""
Tests for full reconciliation: dependency levels, error collection and
the watchdog thread.
"""

import threading

import pytest

from conftest import FakeConfigurator
from orchestrator.hooks import HookDispatcher
from orchestrator.reconcile import Reconciler, compute_levels
from store.apps import AppStatus, ManagedApp


def record(name, **integrations):
    return ManagedApp(name=name, integration_config=integrations)


@pytest.fixture
def dispatcher(registry, app_store, data_dir):
    return HookDispatcher(registry, app_store, data_dir, 9001, health_timeout=1)


@pytest.fixture
def reconciler(dispatcher, app_store):
    return Reconciler(dispatcher, app_store)


class TestComputeLevels:
    def test_empty(self):
        assert compute_levels({}) == []

    def test_providers_before_consumers(self):
        records = {
            "jellyseerr": record("jellyseerr", mediaServer="jellyfin", arr="sonarr"),
            "sonarr": record("sonarr", downloadClient="qbittorrent"),
            "qbittorrent": record("qbittorrent"),
            "jellyfin": record("jellyfin"),
        }
        assert compute_levels(records) == [["jellyfin", "qbittorrent"], ["sonarr"], ["jellyseerr"]]

    def test_uninstalled_providers_ignored(self):
        records = {"sonarr": record("sonarr", downloadClient="qbittorrent")}
        assert compute_levels(records) == [["sonarr"]]

    def test_multi_provider_value(self):
        records = {
            "bazarr": record("bazarr", arr="sonarr,radarr"),
            "sonarr": record("sonarr"),
            "radarr": record("radarr"),
        }
        assert compute_levels(records) == [["radarr", "sonarr"], ["bazarr"]]

    def test_cycle_terminates(self):
        records = {"a": record("a", x="b"), "b": record("b", x="a")}
        levels = compute_levels(records)
        assert sorted(name for level in levels for name in level) == ["a", "b"]


class TestReconcile:
    def test_empty_store(self, reconciler):
        result = reconciler.reconcile()
        assert result.success
        assert result.reconciled == []

    def test_order_follows_levels(self, reconciler, registry, app_store, calls):
        for name in ("sonarr", "qbittorrent"):
            registry.register(FakeConfigurator(name, calls))
        app_store.install("sonarr", integration_config={"downloadClient": "qbittorrent"})
        app_store.install("qbittorrent")

        result = reconciler.reconcile()

        assert result.success
        assert result.reconciled == ["qbittorrent", "sonarr"]
        assert calls == [
            ("prestart", "qbittorrent"),
            ("prestart", "sonarr"),
            ("health", "qbittorrent"),
            ("poststart", "qbittorrent"),
            ("health", "sonarr"),
            ("poststart", "sonarr"),
        ]

    def test_failures_collected(self, reconciler, registry, app_store, calls):
        registry.register(FakeConfigurator("a", calls, fail_prestart=True))
        registry.register(FakeConfigurator("b", calls, fail_health=True))
        registry.register(FakeConfigurator("c", calls, fail_poststart=True))
        registry.register(FakeConfigurator("d", calls))
        for name in "abcd":
            app_store.install(name)

        result = reconciler.reconcile()

        assert not result.success
        assert result.errors == [
            "a: PreStart failed: prestart boom",
            "b: HealthCheck failed: not healthy",
            "c: PostStart failed: poststart boom",
        ]
        # a failed PreStart does not stop its PostStart phase
        assert result.reconciled == ["a", "d"]
        assert ("poststart", "b") not in calls

    def test_apps_without_configurator_skipped(self, reconciler, registry, app_store, calls):
        registry.register(FakeConfigurator("sonarr", calls))
        app_store.install("sonarr")
        app_store.install("jellyfin")

        result = reconciler.reconcile()

        assert result.success
        assert result.reconciled == ["sonarr"]

    def test_uninstalling_apps_skipped(self, reconciler, registry, app_store, calls):
        registry.register(FakeConfigurator("sonarr", calls))
        app_store.install("sonarr")
        app_store.update_status("sonarr", AppStatus.UNINSTALLING)

        result = reconciler.reconcile()

        assert calls == []
        assert result.reconciled == []

    def test_result_dict(self, reconciler):
        data = reconciler.reconcile().to_dict()
        assert data["success"] is True
        assert data["errors"] == []


class TestWatchdog:
    def test_runs_and_stops(self, reconciler, registry, app_store):
        ran = threading.Event()

        class Signal(FakeConfigurator):
            def post_start(self, ctx, state):
                ran.set()

        registry.register(Signal("sonarr"))
        app_store.install("sonarr")

        reconciler.start_watchdog(interval=60)
        try:
            assert ran.wait(5)
        finally:
            reconciler.stop_watchdog()
        assert reconciler._thread is None
