# HEARTH v1.0 - Readiness waits shared by all configurators
import logging
import socket

import requests

from utils.errors import ReadinessTimeout, WaitCancelled

_log = logging.getLogger(__name__)

DEFAULT_HEALTH_CHECK_TIMEOUT = 60
DEFAULT_SSO_TIMEOUT = 180
DEFAULT_INTERVAL = 1.0
SSO_INTERVAL = 2.0
REQUEST_TIMEOUT = 5.0
TCP_TIMEOUT = 2.0


def poll_until(ctx, target, timeout, interval, probe):
    '''
    Run probe() until it reports ready, the timeout passes or ctx is cancelled.
    probe returns (ready, error_message).
    '''
    wait_ctx = ctx.child(timeout)
    last_error = None

    while True:
        if wait_ctx.cancelled():
            raise WaitCancelled(target)

        ready, err = probe(wait_ctx)
        if ready:
            return
        if err:
            last_error = err

        if wait_ctx.expired():
            raise ReadinessTimeout(target, timeout, last_error)
        if wait_ctx.cancel.wait(min(interval, wait_ctx.remaining())):
            raise WaitCancelled(target)


def _request_timeout(ctx):
    return max(0.1, min(REQUEST_TIMEOUT, ctx.remaining()))


def http_probe(url, accept, allow_redirects=True):
    '''Probe for poll_until: ready when accept(status_code) is true'''
    def probe(ctx):
        try:
            resp = requests.get(url, timeout=_request_timeout(ctx), allow_redirects=allow_redirects)
        except requests.RequestException as e:
            return False, str(e)
        if accept(resp.status_code):
            return True, None
        return False, f"status {resp.status_code}"
    return probe


def wait_for_http(ctx, url, timeout=DEFAULT_HEALTH_CHECK_TIMEOUT, interval=DEFAULT_INTERVAL):
    '''Poll url until it answers 2xx'''
    poll_until(ctx, url, timeout, interval, http_probe(url, lambda code: 200 <= code < 300))


def wait_for_http_with_auth(ctx, url, timeout=DEFAULT_HEALTH_CHECK_TIMEOUT, interval=DEFAULT_INTERVAL):
    '''Poll url until it answers anything in 2xx-4xx.
    A 401/403 still proves the service is listening.'''
    poll_until(ctx, url, timeout, interval, http_probe(url, lambda code: 200 <= code < 500))


def wait_for_tcp(ctx, host, port, timeout=DEFAULT_HEALTH_CHECK_TIMEOUT, interval=DEFAULT_INTERVAL):
    '''Poll until a TCP connection to host:port succeeds'''
    def probe(wait_ctx):
        try:
            conn = socket.create_connection((host, port), timeout=min(TCP_TIMEOUT, max(0.1, wait_ctx.remaining())))
        except OSError as e:
            return False, str(e)
        conn.close()
        return True, None

    poll_until(ctx, f"{host}:{port}", timeout, interval, probe)


def _openid_probe(url):
    def probe(ctx):
        try:
            resp = requests.get(url, timeout=_request_timeout(ctx))
        except requests.RequestException as e:
            return False, str(e)
        if resp.status_code != 200:
            return False, f"status {resp.status_code}"
        try:
            body = resp.json()
        except ValueError as e:
            return False, f"invalid JSON: {e}"
        if not isinstance(body, dict) or not body.get('issuer'):
            return False, "missing issuer in OpenID configuration"
        return True, None
    return probe


def wait_for_openid_config(ctx, url, timeout=DEFAULT_SSO_TIMEOUT, interval=SSO_INTERVAL):
    '''Poll an OpenID discovery document until it carries an issuer.
    A bare 200 is not enough: the provider serves one before the
    app's blueprint has been applied.'''
    poll_until(ctx, url, timeout, interval, _openid_probe(url))


def sso_discovery_url(app_name, authentik_port):
    return f"http://localhost:{authentik_port}/application/o/{app_name}/.well-known/openid-configuration"


def wait_for_sso(ctx, app_name, authentik_port, timeout=DEFAULT_SSO_TIMEOUT, interval=SSO_INTERVAL):
    url = sso_discovery_url(app_name, authentik_port)
    _log.info("waiting for SSO app=%s url=%s timeout=%s", app_name, url, timeout)
    wait_for_openid_config(ctx, url, timeout=timeout, interval=interval)
    _log.info("SSO ready app=%s", app_name)


def should_wait_for_sso(app_name, authentik_port):
    '''Best-effort probe for SSO when no app record is available.
    Any answer other than a 404 or a connection failure counts as "has SSO".'''
    try:
        resp = requests.get(sso_discovery_url(app_name, authentik_port), timeout=REQUEST_TIMEOUT)
    except requests.RequestException:
        return False
    return resp.status_code != 404
