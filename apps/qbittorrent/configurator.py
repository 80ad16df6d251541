# HEARTH v1.0
'''qBittorrent configuration hooks'''

from apps.configurator_base import Configurator
from apps.health import wait_for_http_with_auth
from apps.ini_file import IniFile
from utils.errors import StorageError

DEFAULT_PORT = 8086
HEALTH_TIMEOUT = 30

# Needed for iframe embedding behind the reverse proxy
REQUIRED_PREFERENCES = {
    'WebUI\\HostHeaderValidation': 'false',
    'WebUI\\CSRFProtection': 'false',
    'WebUI\\ClickjackingProtection': 'false',
    'WebUI\\AuthSubnetWhitelistEnabled': 'true',
    'WebUI\\AuthSubnetWhitelist': '127.0.0.0/8, 10.0.0.0/8, 172.16.0.0/12, 192.168.0.0/16',
    'Downloads\\SavePath': '/downloads',
}


class QBittorrentConfigurator(Configurator):
    '''
    Source app: others integrate with it, it integrates with nothing.
    PreStart keeps qBittorrent.conf in shape, PostStart has nothing to do.
    '''

    def __init__(self, port=0):
        self.port = port or DEFAULT_PORT

    @property
    def name(self):
        return 'qbittorrent'

    def pre_start(self, ctx, state):
        config_dir = state.data_path / 'config' / 'qBittorrent'
        download_dir = state.shared_data_path / 'downloads'
        for directory in (config_dir, download_dir):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError("create directory", directory, e) from e

        ini = IniFile(config_dir / 'qBittorrent.conf').load()
        ini.ensure_keys('Preferences', REQUIRED_PREFERENCES)

        # Fresh install defaults only, never override user choices
        if ini.get('Preferences', 'General\\Locale') is None:
            ini.ensure_keys('Preferences', {
                'General\\Locale': 'en',
                'Downloads\\PreAllocation': 'true',
            })
        if ini.get('BitTorrent', 'Session\\DefaultSavePath') is None:
            ini.ensure_keys('BitTorrent', {'Session\\DefaultSavePath': '/downloads'})

        ini.save()

    def health_check(self, ctx):
        url = f"http://localhost:{self.port}/api/v2/app/version"
        wait_for_http_with_auth(ctx, url, timeout=HEALTH_TIMEOUT)

    def post_start(self, ctx, state):
        pass
