# HEARTH v1.0
'''Registers the bundled configurators'''

from apps.miniflux import MinifluxConfigurator
from apps.qbittorrent import QBittorrentConfigurator


def register_all(registry, config, secrets=None):
    '''Register every bundled configurator with registry'''
    proxy_config_dir = config.data_dir / 'traefik' / 'dynamic'

    miniflux_password = secrets.generate_app_admin_password('miniflux') if secrets else ''
    registry.register(MinifluxConfigurator(
        port=8085,
        admin_username='admin',
        admin_password=miniflux_password,
        proxy_config_dir=proxy_config_dir,
    ))
    registry.register(QBittorrentConfigurator(port=8086))
    return registry
