"""
Shared test fixtures: temp data dir, SQLite-backed stores, fake
configurators and a fake rebuilder.
"""

import threading
from pathlib import Path

import pytest

from apps.catalog import AppDefinition, AppGraph, HealthCheck
from apps.configurator_base import Configurator
from apps.registry import ConfiguratorRegistry
from nixgen.generator import Generator
from nixgen.rebuild import RebuildResult
from store.apps import AppStore
from store.db import open_database
from store.history import RebuildHistory


class FakeConfigurator(Configurator):
    """Records hook calls into a shared list; can be told to fail."""

    def __init__(self, app_name, calls=None, fail_prestart=False, fail_health=False, fail_poststart=False):
        self._name = app_name
        self.calls = calls if calls is not None else []
        self.fail_prestart = fail_prestart
        self.fail_health = fail_health
        self.fail_poststart = fail_poststart
        self.states = []

    @property
    def name(self):
        return self._name

    def pre_start(self, ctx, state):
        self.calls.append(("prestart", self._name))
        self.states.append(state)
        if self.fail_prestart:
            raise RuntimeError("prestart boom")

    def health_check(self, ctx):
        self.calls.append(("health", self._name))
        if self.fail_health:
            raise RuntimeError("not healthy")

    def post_start(self, ctx, state):
        self.calls.append(("poststart", self._name))
        if self.fail_poststart:
            raise RuntimeError("poststart boom")


class FakeRebuilder:
    """Stands in for nixos-rebuild and systemctl."""

    def __init__(self, success=True):
        self.success = success
        self.switch_calls = 0
        self.rollback_calls = 0
        self.stopped = []
        self.restarts = 0

    def switch(self):
        self.switch_calls += 1
        return RebuildResult(
            success=self.success,
            output="building the system configuration...\n",
            error_message="" if self.success else "nixos-rebuild exited with status 1",
            duration=0.1,
        )

    def rollback(self):
        self.rollback_calls += 1
        return RebuildResult(success=self.success, output="rolling back\n", duration=0.1)

    def stop_user_service(self, app_name):
        self.stopped.append(app_name)
        return True

    def reload_and_restart_apps(self):
        self.restarts += 1
        return True


def catalog_apps():
    """A small catalog: a download client, two consumers, a media stack."""
    return [
        AppDefinition(name="qbittorrent", display_name="qBittorrent", port=8086,
                      health_check=HealthCheck(path="/api/v2/app/version", interval=1, timeout=1)),
        AppDefinition(name="transmission", display_name="Transmission", port=9091),
        AppDefinition.from_dict({
            "name": "sonarr",
            "display_name": "Sonarr",
            "port": 8989,
            "integrations": {
                "downloadClient": {
                    "required": True,
                    "compatible": [
                        {"app": "qbittorrent", "default": True},
                        {"app": "transmission"},
                    ],
                },
            },
        }),
        AppDefinition.from_dict({
            "name": "jellyseerr",
            "port": 5055,
            "integrations": {
                "mediaServer": {
                    "required": True,
                    "compatible": [{"app": "jellyfin"}],
                },
            },
        }),
        AppDefinition(name="jellyfin", port=8096),
        AppDefinition(name="miniflux", port=8085, sso_strategy="native-oidc"),
    ]


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Return a temporary data directory."""
    d = tmp_path / "data"
    d.mkdir()
    return d


@pytest.fixture
def database(tmp_path: Path):
    db = open_database(f"sqlite:///{tmp_path / 'hearth.db'}")
    yield db
    db.dispose()


@pytest.fixture
def app_store(database) -> AppStore:
    return AppStore(database)


@pytest.fixture
def history(database) -> RebuildHistory:
    return RebuildHistory(database)


@pytest.fixture
def registry() -> ConfiguratorRegistry:
    return ConfiguratorRegistry()


@pytest.fixture
def graph() -> AppGraph:
    return AppGraph(catalog_apps())


@pytest.fixture
def generator(data_dir: Path) -> Generator:
    return Generator(data_dir / "nix" / "apps.nix")


@pytest.fixture
def rebuilder() -> FakeRebuilder:
    return FakeRebuilder()


@pytest.fixture
def calls():
    return []


class FakeResponse:
    """Minimal requests.Response stand-in."""

    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload

    def raise_for_status(self):
        import requests

        if self.status_code >= 400:
            raise requests.HTTPError(f"status {self.status_code}")


@pytest.fixture
def fake_get(monkeypatch):
    """Patch requests.get with a scripted sequence of responses.

    Usage: urls = fake_get([FakeResponse(503), FakeResponse(200)])
    The last response repeats once the script runs out.
    """
    import requests

    def install(responses):
        seen = []
        lock = threading.Lock()
        script = list(responses)

        def get(url, *args, **kwargs):
            with lock:
                seen.append(url)
                item = script.pop(0) if len(script) > 1 else script[0]
            if isinstance(item, Exception):
                raise item
            return item

        monkeypatch.setattr(requests, "get", get)
        return seen

    return install
