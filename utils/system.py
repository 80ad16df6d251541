# HEARTH v1.0 - Cached system metrics
import logging
import shutil
import threading
import time

import psutil

_log = logging.getLogger(__name__)

STATS_INTERVAL = 2.0


def _get_system(disk_root='/'):
    '''Get system metrics via psutil.'''
    cpu = psutil.cpu_percent(interval=None)
    mem = psutil.virtual_memory()
    try:
        total, used, free = shutil.disk_usage(disk_root)
    except OSError:
        total, used, free = 1, 0, 1

    return {
        'cpu': cpu,
        'ram_total': round(mem.total / (1024 ** 3), 1),
        'ram_used': round(mem.used / (1024 ** 3), 1),
        'ram_percent': mem.percent,
        'disk_total': total // (2 ** 30),
        'disk_used': used // (2 ** 30),
        'disk_free': free // (2 ** 30),
        'disk_percent': int((used / total) * 100) if total else 0,
        'timestamp': time.time(),
    }


class StatsCollector:
    '''Refreshes a metrics snapshot on a daemon thread'''

    def __init__(self, interval=STATS_INTERVAL, disk_root='/'):
        self.interval = interval
        self.disk_root = disk_root
        self._stats = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread = None

    def collect(self):
        try:
            stats = _get_system(self.disk_root)
        except Exception as e:
            _log.warning("failed to collect system stats error=%s", e)
            return
        with self._lock:
            self._stats = stats

    def get_stats(self):
        with self._lock:
            return dict(self._stats)

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        # Prime psutil CPU (first call always returns 0)
        psutil.cpu_percent(interval=None)
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name='stats-collector', daemon=True)
        self._thread.start()

    def _run(self):
        while True:
            self.collect()
            if self._stop.wait(self.interval):
                break

    def stop(self, timeout=5):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
