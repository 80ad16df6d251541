# HEARTH v1.0
from apps.qbittorrent.configurator import QBittorrentConfigurator

__all__ = ['QBittorrentConfigurator']
