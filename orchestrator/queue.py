# HEARTH v1.0 - Serialized install/uninstall operations
import logging
import queue
import threading
from concurrent.futures import Future

from utils.errors import HearthError

_log = logging.getLogger(__name__)

DEFAULT_RESULT_TIMEOUT = 30 * 60


class QueueStopped(HearthError):
    '''The operation queue is not accepting work'''


class OperationQueue:
    '''
    One worker thread runs install/uninstall operations in arrival order,
    so two rebuilds never overlap.
    '''

    def __init__(self, orchestrator):
        self.orchestrator = orchestrator
        self._requests = queue.Queue()
        self._thread = None
        self._running = False
        self._lock = threading.Lock()

    def start(self):
        with self._lock:
            if self._running:
                return
            self._running = True
            self._thread = threading.Thread(target=self._worker, name='operation-queue', daemon=True)
            self._thread.start()

    def stop(self, timeout=10):
        with self._lock:
            if not self._running:
                return
            self._running = False
        self._requests.put(None)
        self._thread.join(timeout)

    def _submit(self, fn, req):
        with self._lock:
            if not self._running:
                raise QueueStopped("operation queue is not running")
            future = Future()
            self._requests.put((fn, req, future))
        return future

    def enqueue_install(self, req, timeout=DEFAULT_RESULT_TIMEOUT):
        _log.info("enqueueing install app=%s", req.app)
        return self._submit(self.orchestrator.install, req).result(timeout)

    def enqueue_uninstall(self, req, timeout=DEFAULT_RESULT_TIMEOUT):
        _log.info("enqueueing uninstall app=%s clear_data=%s", req.app, req.clear_data)
        return self._submit(self.orchestrator.uninstall, req).result(timeout)

    def _worker(self):
        while True:
            item = self._requests.get()
            if item is None:
                break
            fn, req, future = item
            if not future.set_running_or_notify_cancel():
                continue
            try:
                future.set_result(fn(req))
            except Exception as e:
                _log.error("operation failed app=%s error=%s", req.app, e)
                future.set_exception(e)

        # Reject anything queued behind the stop marker
        while True:
            try:
                item = self._requests.get_nowait()
            except queue.Empty:
                break
            if item is not None:
                item[2].set_exception(QueueStopped("operation queue stopped"))
