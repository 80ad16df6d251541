# HEARTH v1.0
from apps.miniflux.configurator import MinifluxConfigurator

__all__ = ['MinifluxConfigurator']
