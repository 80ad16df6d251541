# HEARTH v1.0
'''Miniflux configuration hooks'''

import logging

import requests

from apps.configurator_base import Configurator
from apps.health import DEFAULT_HEALTH_CHECK_TIMEOUT, REQUEST_TIMEOUT, wait_for_http
from utils.errors import ConfigConflictError, HearthError
from utils.fileutil import atomic_write

_log = logging.getLogger(__name__)

DEFAULT_PORT = 8085
ADMIN_USER_ID = 1  # initial admin created by the container
ADMIN_THEME = 'light_serif'

# Redirect the embedded login page straight to SSO
SSO_REDIRECT_CONFIG = """# Auto-redirect Miniflux login to SSO
http:
  routers:
    miniflux-login-redirect:
      rule: "Path(`/embed/miniflux/login`)"
      middlewares:
        - miniflux-sso-redirect
      service: miniflux
      priority: 200
  middlewares:
    miniflux-sso-redirect:
      redirectRegex:
        regex: ".*"
        replacement: "/embed/miniflux/oauth2/oidc/redirect"
        permanent: false
"""


class MinifluxConfigurator(Configurator):

    def __init__(self, port=0, admin_username='admin', admin_password='', proxy_config_dir=None):
        self.port = port or DEFAULT_PORT
        self.admin_username = admin_username
        self.admin_password = admin_password
        self.proxy_config_dir = proxy_config_dir

    @property
    def name(self):
        return 'miniflux'

    @property
    def base_url(self):
        # Miniflux serves everything under its BASE_URL prefix
        return f"http://localhost:{self.port}/embed/miniflux"

    def pre_start(self, ctx, state):
        '''Write the SSO login redirect when the sso integration is enabled.
        Waiting for the identity provider is done by the dispatcher.'''
        if not state.has_integration('sso') or self.proxy_config_dir is None:
            return
        path = self.proxy_config_dir / 'miniflux-sso.yml'
        if path.exists() and path.read_text(encoding='utf-8') == SSO_REDIRECT_CONFIG:
            return
        atomic_write(path, SSO_REDIRECT_CONFIG, mode=0o644)

    def health_check(self, ctx):
        wait_for_http(ctx, f"{self.base_url}/healthcheck", timeout=DEFAULT_HEALTH_CHECK_TIMEOUT)

    def post_start(self, ctx, state):
        '''Set the admin theme, only when it differs'''
        url = f"{self.base_url}/v1/users/{ADMIN_USER_ID}"
        auth = (self.admin_username, self.admin_password)

        try:
            resp = requests.get(url, auth=auth, timeout=REQUEST_TIMEOUT)
            resp.raise_for_status()
            user = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise HearthError(f"failed to read miniflux admin user: {e}") from e

        username = user.get('username')
        if username and username != self.admin_username:
            raise ConfigConflictError(
                f"miniflux user {ADMIN_USER_ID} is {username!r}, expected {self.admin_username!r}")

        current = user.get('theme')
        if current == ADMIN_THEME:
            return

        try:
            resp = requests.put(url, json={'theme': ADMIN_THEME}, auth=auth, timeout=REQUEST_TIMEOUT)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise HearthError(f"failed to configure miniflux: {e}") from e
        _log.info("set miniflux admin theme theme=%s", ADMIN_THEME)
