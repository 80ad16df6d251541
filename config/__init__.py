# HEARTH v1.0
import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_PORT = 3000
DEFAULT_AUTHENTIK_PORT = 9001

# Development fallbacks when neither env nor secret bundle provide a value
_DEV_SSO_HOST_SECRET = 'dev-sso-host-secret-change-me'
_DEV_AUTHENTIK_TOKEN = 'dev-authentik-bootstrap-token'
_DEV_AUTHENTIK_PASSWORD = 'dev-authentik-password'
_DEV_LDAP_BIND_PASSWORD = 'dev-ldap-bind-password'


@dataclass
class Config:
    '''Runtime settings for the server and hook invocations'''
    data_dir: Path
    port: int = DEFAULT_PORT
    database_url: str = ''
    catalog_path: Path = None
    nix_config_path: Path = None
    flake_path: str = ''
    flake_target: str = 'hearth'
    authentik_port: int = DEFAULT_AUTHENTIK_PORT
    sso_base_url: str = 'http://localhost:8080'
    container_socket: str = ''
    log_level: str = 'INFO'
    rebuild_sudo: bool = True
    sso_host_secret: str = ''
    authentik_token: str = ''
    authentik_password: str = ''
    ldap_bind_password: str = ''

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        if not self.database_url:
            self.database_url = f"sqlite:///{self.data_dir / 'hearth.db'}"
        if self.catalog_path is None:
            self.catalog_path = self.data_dir / 'catalog.json'
        if self.nix_config_path is None:
            self.nix_config_path = self.data_dir / 'nix' / 'apps.nix'
        if not self.container_socket:
            self.container_socket = _default_socket()

    @property
    def secrets_path(self):
        return self.data_dir / 'secrets' / 'secrets.json'


def _default_socket():
    runtime_dir = os.environ.get('XDG_RUNTIME_DIR') or f"/run/user/{os.getuid()}"
    return str(Path(runtime_dir) / 'podman' / 'podman.sock')


def _env_int(name, default):
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _resolve(env_name, secret_value, fallback):
    '''Priority: environment variable, then generated secret, then fallback'''
    return os.environ.get(env_name) or secret_value or fallback


def load_config(secrets=None):
    '''Build Config from HEARTH_* environment variables.

    secrets is an optional loaded SecretManager used to fill the
    secret-derived settings.
    '''
    data_dir = Path(os.environ.get('HEARTH_DATA_DIR') or Path.home() / '.local' / 'share' / 'hearth')

    def secret(name):
        return secrets.get(name) if secrets is not None else ''

    return Config(
        data_dir=data_dir,
        port=_env_int('HEARTH_PORT', DEFAULT_PORT),
        database_url=os.environ.get('HEARTH_DATABASE_URL', ''),
        catalog_path=Path(os.environ['HEARTH_CATALOG_PATH']) if os.environ.get('HEARTH_CATALOG_PATH') else None,
        nix_config_path=Path(os.environ['HEARTH_NIX_CONFIG_PATH']) if os.environ.get('HEARTH_NIX_CONFIG_PATH') else None,
        flake_path=os.environ.get('HEARTH_FLAKE_PATH', ''),
        flake_target=os.environ.get('HEARTH_FLAKE_TARGET', 'hearth'),
        authentik_port=_env_int('HEARTH_AUTHENTIK_PORT', DEFAULT_AUTHENTIK_PORT),
        sso_base_url=os.environ.get('HEARTH_SSO_BASE_URL', 'http://localhost:8080'),
        container_socket=os.environ.get('HEARTH_CONTAINER_SOCKET', ''),
        log_level=os.environ.get('HEARTH_LOG_LEVEL', 'INFO'),
        rebuild_sudo=_env_bool('HEARTH_REBUILD_SUDO', True),
        sso_host_secret=_resolve('HEARTH_SSO_HOST_SECRET', secret('ssoHostSecret'), _DEV_SSO_HOST_SECRET),
        authentik_token=_resolve('HEARTH_AUTHENTIK_TOKEN', secret('authentikBootstrapToken'), _DEV_AUTHENTIK_TOKEN),
        authentik_password=_resolve('HEARTH_AUTHENTIK_PASSWORD', secret('authentikBootstrapPassword'), _DEV_AUTHENTIK_PASSWORD),
        ldap_bind_password=_resolve('HEARTH_LDAP_BIND_PASSWORD', secret('ldapBindPassword'), _DEV_LDAP_BIND_PASSWORD),
    )
