# HEARTH v1.0
import logging
import threading

_log = logging.getLogger(__name__)


class ConfiguratorRegistry:
    '''Thread-safe app name -> Configurator lookup'''

    def __init__(self):
        self._configurators = {}
        self._lock = threading.RLock()

    def register(self, configurator):
        '''Add a configurator. A later registration for the same app wins.'''
        with self._lock:
            if configurator.name in self._configurators:
                _log.debug("replacing configurator app=%s", configurator.name)
            self._configurators[configurator.name] = configurator

    def get(self, app_name):
        '''Return the configurator for app_name, or None'''
        with self._lock:
            return self._configurators.get(app_name)

    def has(self, app_name):
        with self._lock:
            return app_name in self._configurators

    def all(self):
        with self._lock:
            return list(self._configurators.values())

    def names(self):
        with self._lock:
            return sorted(self._configurators)


# Global instance
_registry = ConfiguratorRegistry()


def get_registry():
    '''Get global configurator registry'''
    return _registry
