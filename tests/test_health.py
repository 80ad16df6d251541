"""
Tests for readiness waits: HTTP, auth-tolerant HTTP, TCP and OpenID
discovery, with timeouts and cancellation.
"""

import socket
import threading
import time

import pytest
import requests

from apps.configurator_base import HookContext
from apps.health import (
    poll_until,
    should_wait_for_sso,
    sso_discovery_url,
    wait_for_http,
    wait_for_http_with_auth,
    wait_for_openid_config,
    wait_for_sso,
    wait_for_tcp,
)
from conftest import FakeResponse
from utils.errors import ReadinessTimeout, WaitCancelled

FAST = 0.01


@pytest.fixture
def ctx():
    return HookContext.with_timeout(10)


class TestHookContext:
    def test_unbounded(self):
        c = HookContext()
        assert c.remaining() is None
        assert not c.expired()

    def test_child_is_bounded_by_parent(self):
        parent = HookContext.with_timeout(0.5)
        child = parent.child(60)
        assert child.remaining() <= 0.5
        assert child.cancel is parent.cancel

    def test_child_shorter_than_parent(self):
        child = HookContext.with_timeout(60).child(1)
        assert child.remaining() <= 1

    def test_cancel_propagates(self):
        parent = HookContext.with_timeout(60)
        child = parent.child(10)
        parent.cancel.set()
        assert child.cancelled()


class TestHttpWaits:
    def test_ready_after_failures(self, ctx, fake_get):
        seen = fake_get([FakeResponse(503), FakeResponse(502), FakeResponse(200)])
        wait_for_http(ctx, "http://localhost:1/health", timeout=5, interval=FAST)
        assert len(seen) == 3

    def test_connection_errors_are_retried(self, ctx, fake_get):
        seen = fake_get([requests.ConnectionError("refused"), FakeResponse(204)])
        wait_for_http(ctx, "http://localhost:1/health", timeout=5, interval=FAST)
        assert len(seen) == 2

    def test_timeout_reports_last_error(self, ctx, fake_get):
        fake_get([FakeResponse(500)])
        with pytest.raises(ReadinessTimeout) as exc:
            wait_for_http(ctx, "http://localhost:1/health", timeout=0.1, interval=FAST)
        assert "status 500" in str(exc.value)
        assert exc.value.target == "http://localhost:1/health"

    def test_strict_wait_rejects_401(self, ctx, fake_get):
        fake_get([FakeResponse(401)])
        with pytest.raises(ReadinessTimeout):
            wait_for_http(ctx, "http://localhost:1/", timeout=0.1, interval=FAST)

    def test_auth_wait_accepts_401(self, ctx, fake_get):
        fake_get([FakeResponse(401)])
        wait_for_http_with_auth(ctx, "http://localhost:1/", timeout=1, interval=FAST)

    def test_auth_wait_rejects_5xx(self, ctx, fake_get):
        fake_get([FakeResponse(503)])
        with pytest.raises(ReadinessTimeout):
            wait_for_http_with_auth(ctx, "http://localhost:1/", timeout=0.1, interval=FAST)

    def test_parent_deadline_caps_timeout(self, fake_get):
        fake_get([FakeResponse(500)])
        short = HookContext.with_timeout(0.1)
        start = time.monotonic()
        with pytest.raises(ReadinessTimeout):
            wait_for_http(short, "http://localhost:1/", timeout=30, interval=FAST)
        assert time.monotonic() - start < 5


class TestCancellation:
    def test_already_cancelled(self, ctx):
        ctx.cancel.set()
        probe_calls = []
        with pytest.raises(WaitCancelled):
            poll_until(ctx, "thing", 5, FAST, lambda c: probe_calls.append(1) or (False, None))
        assert probe_calls == []

    def test_cancel_during_wait(self, ctx, fake_get):
        fake_get([FakeResponse(503)])
        timer = threading.Timer(0.05, ctx.cancel.set)
        timer.start()
        start = time.monotonic()
        try:
            with pytest.raises(WaitCancelled):
                wait_for_http(ctx, "http://localhost:1/", timeout=30, interval=0.5)
        finally:
            timer.cancel()
        assert time.monotonic() - start < 5


class TestTcp:
    def test_listening_port(self, ctx):
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        try:
            wait_for_tcp(ctx, "127.0.0.1", server.getsockname()[1], timeout=2, interval=FAST)
        finally:
            server.close()

    def test_closed_port_times_out(self, ctx):
        s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
        s.close()
        with pytest.raises(ReadinessTimeout):
            wait_for_tcp(ctx, "127.0.0.1", port, timeout=0.1, interval=FAST)


class TestOpenId:
    def test_requires_issuer(self, ctx, fake_get):
        fake_get([FakeResponse(200, {})])
        with pytest.raises(ReadinessTimeout) as exc:
            wait_for_openid_config(ctx, "http://idp/.well-known", timeout=0.1, interval=FAST)
        assert "issuer" in str(exc.value)

    def test_empty_200_is_not_ready(self, ctx, fake_get):
        fake_get([FakeResponse(200)])
        with pytest.raises(ReadinessTimeout):
            wait_for_openid_config(ctx, "http://idp/.well-known", timeout=0.1, interval=FAST)

    def test_ready_with_issuer(self, ctx, fake_get):
        seen = fake_get([
            FakeResponse(404),
            FakeResponse(200, {"issuer": ""}),
            FakeResponse(200, {"issuer": "http://idp/application/o/miniflux/"}),
        ])
        wait_for_openid_config(ctx, "http://idp/.well-known", timeout=5, interval=FAST)
        assert len(seen) == 3

    def test_wait_for_sso_polls_discovery_url(self, ctx, fake_get):
        seen = fake_get([FakeResponse(200, {"issuer": "x"})])
        wait_for_sso(ctx, "miniflux", 9001, timeout=1, interval=FAST)
        assert seen == [sso_discovery_url("miniflux", 9001)]
        assert seen[0] == "http://localhost:9001/application/o/miniflux/.well-known/openid-configuration"


class TestShouldWaitForSso:
    def test_404_means_no_sso(self, fake_get):
        fake_get([FakeResponse(404)])
        assert should_wait_for_sso("jellyfin", 9001) is False

    def test_any_other_answer_means_sso(self, fake_get):
        fake_get([FakeResponse(503)])
        assert should_wait_for_sso("miniflux", 9001) is True

    def test_unreachable_means_no_sso(self, fake_get):
        fake_get([requests.ConnectionError("down")])
        assert should_wait_for_sso("miniflux", 9001) is False
