"""
Tests for the operation queue and the app event hub.
"""

import json
import threading
import time

import pytest

from orchestrator.orchestrator import InstallRequest, InstallResult, UninstallRequest, UninstallResult
from orchestrator.queue import OperationQueue, QueueStopped
from web.events import AppEventHub, format_event


class RecordingOrchestrator:
    """Records operation order and flags any overlap."""

    def __init__(self, delay=0.02):
        self.delay = delay
        self.order = []
        self.active = 0
        self.overlapped = False
        self._lock = threading.Lock()

    def _run(self, kind, app):
        with self._lock:
            self.active += 1
            if self.active > 1:
                self.overlapped = True
        time.sleep(self.delay)
        with self._lock:
            self.active -= 1
            self.order.append((kind, app))

    def install(self, req):
        if req.app == "explode":
            raise RuntimeError("kaboom")
        self._run("install", req.app)
        return InstallResult(app=req.app, success=True)

    def uninstall(self, req):
        self._run("uninstall", req.app)
        return UninstallResult(app=req.app, success=True)


@pytest.fixture
def queue_and_orch():
    orch = RecordingOrchestrator()
    q = OperationQueue(orch)
    q.start()
    yield q, orch
    q.stop()


class TestOperationQueue:
    def test_returns_result(self, queue_and_orch):
        q, _ = queue_and_orch
        result = q.enqueue_install(InstallRequest("sonarr"), timeout=5)
        assert result.success
        assert result.app == "sonarr"

    def test_operations_never_overlap(self, queue_and_orch):
        q, orch = queue_and_orch
        threads = [
            threading.Thread(target=q.enqueue_install, args=(InstallRequest(f"app{i}"),))
            for i in range(4)
        ]
        threads.append(threading.Thread(target=q.enqueue_uninstall, args=(UninstallRequest("old"),)))
        for t in threads:
            t.start()
        for t in threads:
            t.join(5)

        assert len(orch.order) == 5
        assert not orch.overlapped

    def test_exception_propagates_to_caller(self, queue_and_orch):
        q, _ = queue_and_orch
        with pytest.raises(RuntimeError, match="kaboom"):
            q.enqueue_install(InstallRequest("explode"), timeout=5)
        # worker keeps going
        assert q.enqueue_install(InstallRequest("sonarr"), timeout=5).success

    def test_stopped_queue_rejects(self):
        q = OperationQueue(RecordingOrchestrator())
        with pytest.raises(QueueStopped):
            q.enqueue_install(InstallRequest("sonarr"))

        q.start()
        q.stop()
        with pytest.raises(QueueStopped):
            q.enqueue_uninstall(UninstallRequest("sonarr"))


class TestAppEventHub:
    def test_broadcast_reaches_all_subscribers(self):
        hub = AppEventHub()
        a, b = hub.subscribe(), hub.subscribe()
        apps = [{"name": "sonarr"}]

        assert hub.broadcast(apps) == 0
        assert a.get_nowait() == apps
        assert b.get_nowait() == apps

    def test_full_subscriber_is_skipped(self):
        hub = AppEventHub(buffer_size=1)
        slow, fast = hub.subscribe(), hub.subscribe()
        hub.broadcast([1])
        fast.get_nowait()

        assert hub.broadcast([2]) == 1
        assert fast.get_nowait() == [2]
        assert slow.get_nowait() == [1]

    def test_unsubscribe(self):
        hub = AppEventHub()
        q = hub.subscribe()
        hub.unsubscribe(q)
        hub.broadcast([])
        assert q.empty()
        assert hub.subscriber_count() == 0

    def test_close_wakes_streams(self):
        hub = AppEventHub()
        q = hub.subscribe()
        hub.close()
        assert q.get_nowait() is None
        assert hub.subscriber_count() == 0

    def test_close_reaches_full_subscriber(self):
        hub = AppEventHub(buffer_size=1)
        q = hub.subscribe()
        hub.broadcast([{"name": "a"}])

        hub.close()

        assert q.get_nowait() is None
        assert q.empty()

    def test_format_event(self):
        text = format_event([{"name": "sonarr"}])
        assert text.startswith("data: ")
        assert text.endswith("\n\n")
        assert json.loads(text[len("data: "):]) == [{"name": "sonarr"}]
