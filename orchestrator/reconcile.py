# HEARTH v1.0 - Full reconcile and watchdog
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import List

from apps.configurator_base import HookContext
from orchestrator.hooks import HOOK_TIMEOUT, providers_of
from store.apps import AppStatus

_log = logging.getLogger(__name__)

WATCHDOG_INTERVAL = 5 * 60


@dataclass
class ReconcileResult:
    reconciled: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    duration: float = 0.0

    @property
    def success(self):
        return not self.errors

    def to_dict(self):
        return {
            'success': self.success,
            'reconciled': list(self.reconciled),
            'errors': list(self.errors),
            'duration': round(self.duration, 2),
        }


def compute_levels(records):
    '''
    Group apps so providers come before their consumers.
    Level 0 has no installed dependencies; names are sorted in each level.
    '''
    deps = {}
    for name, record in records.items():
        deps[name] = sorted({
            provider
            for value in record.integration_config.values()
            for provider in providers_of(value)
            if provider in records and provider != name
        })

    levels = {}
    visiting = set()

    def level_of(name):
        if name in levels:
            return levels[name]
        if name in visiting:
            return 0  # cycle
        visiting.add(name)
        level = 0
        for dep in deps[name]:
            level = max(level, level_of(dep) + 1)
        visiting.discard(name)
        levels[name] = level
        return level

    for name in sorted(records):
        level_of(name)

    if not levels:
        return []
    result = [[] for _ in range(max(levels.values()) + 1)]
    for name in sorted(levels):
        result[levels[name]].append(name)
    return result


class Reconciler:
    '''Re-runs every installed app's hooks to heal drift'''

    def __init__(self, dispatcher, app_store, watchdog_interval=WATCHDOG_INTERVAL):
        self.dispatcher = dispatcher
        self.app_store = app_store
        self.watchdog_interval = watchdog_interval
        self._stop = threading.Event()
        self._thread = None
        self._run_lock = threading.Lock()

    def reconcile(self, ctx=None):
        '''PreStart for every app, then HealthCheck + PostStart by level.
        Failures are collected, never raised.'''
        ctx = ctx or HookContext.with_timeout(HOOK_TIMEOUT, cancel=self._stop)
        result = ReconcileResult()
        start = time.monotonic()

        with self._run_lock:
            _log.info("starting reconciliation")
            records = {
                r.name: r for r in self.app_store.get_all()
                if r.status != AppStatus.UNINSTALLING.value
            }

            for name in sorted(records):
                if ctx.cancelled():
                    break
                try:
                    self.dispatcher.prestart(name, ctx, record=records[name])
                except Exception as e:
                    _log.warning("prestart failed app=%s error=%s", name, e)
                    result.errors.append(f"{name}: PreStart failed: {e}")

            for level, names in enumerate(compute_levels(records)):
                _log.debug("processing level level=%d apps=%s", level, ",".join(names))
                for name in names:
                    if ctx.cancelled():
                        break
                    if self.dispatcher.registry.get(name) is None:
                        continue
                    try:
                        self.dispatcher.health_check(name, ctx)
                    except Exception as e:
                        _log.warning("health check failed, skipping poststart app=%s error=%s", name, e)
                        result.errors.append(f"{name}: HealthCheck failed: {e}")
                        continue
                    try:
                        self.dispatcher.run_post_start(name, ctx, record=records[name])
                    except Exception as e:
                        _log.warning("poststart failed app=%s error=%s", name, e)
                        result.errors.append(f"{name}: PostStart failed: {e}")
                        continue
                    result.reconciled.append(name)

        result.duration = time.monotonic() - start
        _log.info("reconciliation complete duration=%.1fs reconciled=%d errors=%d",
                  result.duration, len(result.reconciled), len(result.errors))
        return result

    def start_watchdog(self, interval=None):
        '''Reconcile now, then every interval seconds, on a daemon thread'''
        if self._thread is not None and self._thread.is_alive():
            return
        if interval is not None:
            self.watchdog_interval = interval
        self._stop.clear()
        self._thread = threading.Thread(target=self._watchdog_loop, name='reconcile-watchdog', daemon=True)
        self._thread.start()

    def _watchdog_loop(self):
        _log.info("reconciliation watchdog started interval=%ss", self.watchdog_interval)
        while not self._stop.is_set():
            try:
                self.reconcile()
            except Exception as e:
                _log.error("watchdog reconciliation failed error=%s", e)
            if self._stop.wait(self.watchdog_interval):
                break
        _log.info("reconciliation watchdog stopped")

    def stop_watchdog(self, timeout=5):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
