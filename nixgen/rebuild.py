# HEARTH v1.0 - nixos-rebuild and systemd user service control
import logging
import os
import subprocess
import time
from dataclasses import dataclass, field
from typing import List

_log = logging.getLogger(__name__)

BIN_SUDO = '/run/wrappers/bin/sudo'
BIN_NIXOS_REBUILD = '/run/current-system/sw/bin/nixos-rebuild'
BIN_SYSTEMCTL = '/run/current-system/sw/bin/systemctl'

REBUILD_TIMEOUT = 30 * 60
SYSTEMCTL_TIMEOUT = 120
APPS_TARGET = 'hearth-apps.target'

_CHANGE_MARKERS = ('starting', 'stopping', 'restarting', 'reloading')


@dataclass
class RebuildResult:
    success: bool = False
    output: str = ''
    error_message: str = ''
    duration: float = 0.0
    changes: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            'success': self.success,
            'output': self.output,
            'error_message': self.error_message,
            'duration': round(self.duration, 2),
            'changes': list(self.changes),
        }


def parse_changes(output):
    '''Lines where the switch started, stopped, restarted or reloaded units'''
    return [line for line in output.splitlines() if any(m in line for m in _CHANGE_MARKERS)]


class Rebuilder:
    '''Applies generated configuration through nixos-rebuild'''

    def __init__(self, flake_path='', flake_target='hearth', use_sudo=True, impure=True,
                 user_unit_owner='hearth'):
        self.flake_path = flake_path
        self.flake_target = flake_target
        self.use_sudo = use_sudo
        self.impure = impure
        self.user_unit_owner = user_unit_owner

    def _rebuild_cmd(self, action_args):
        args = list(action_args)
        if self.flake_path:
            args += ['--flake', f"{self.flake_path}#{self.flake_target}"]
        if self.impure:
            args.append('--impure')

        env = None
        if self.use_sudo:
            cmd = [BIN_SUDO, 'env', '_NIXOS_REBUILD_REEXEC=1', BIN_NIXOS_REBUILD] + args
        else:
            cmd = [BIN_NIXOS_REBUILD] + args
            env = dict(os.environ, _NIXOS_REBUILD_REEXEC='1')
        return cmd, env

    def _systemctl_cmd(self, args):
        if self.use_sudo:
            return [BIN_SUDO, 'machinectl', 'shell', f"{self.user_unit_owner}@",
                    BIN_SYSTEMCTL, '--user'] + args
        return [BIN_SYSTEMCTL, '--user'] + args

    def _run_rebuild(self, action_args):
        cmd, env = self._rebuild_cmd(action_args)
        _log.info("running nixos-rebuild args=%s sudo=%s", ' '.join(cmd), self.use_sudo)

        start = time.monotonic()
        result = RebuildResult()
        try:
            proc = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding='utf-8',
                errors='ignore',
                timeout=REBUILD_TIMEOUT,
                env=env,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            result.duration = time.monotonic() - start
            result.error_message = f"failed to run nixos-rebuild: {e}"
            _log.error("nixos-rebuild failed to run error=%s", e)
            return result

        result.duration = time.monotonic() - start
        result.output = proc.stdout or ''
        result.changes = parse_changes(result.output)
        if proc.returncode != 0:
            result.error_message = f"nixos-rebuild exited with status {proc.returncode}"
            _log.error("nixos-rebuild failed status=%s duration=%.1fs", proc.returncode, result.duration)
            return result

        result.success = True
        _log.info("nixos-rebuild completed duration=%.1fs changes=%d", result.duration, len(result.changes))
        return result

    def switch(self):
        return self._run_rebuild(['switch'])

    def rollback(self):
        return self._run_rebuild(['switch', '--rollback'])

    def _systemctl(self, args):
        cmd = self._systemctl_cmd(args)
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, encoding='utf-8',
                                  errors='ignore', timeout=SYSTEMCTL_TIMEOUT)
        except (OSError, subprocess.TimeoutExpired) as e:
            return False, str(e)
        if proc.returncode != 0:
            return False, (proc.stderr or proc.stdout).strip()
        return True, ''

    def stop_user_service(self, app_name):
        '''Stop the app's podman unit. Failures are logged, not raised.'''
        ok, err = self._systemctl(['stop', f"podman-{app_name}.service"])
        if not ok:
            _log.warning("failed to stop service app=%s error=%s", app_name, err)
        return ok

    def reload_and_restart_apps(self):
        ok, err = self._systemctl(['daemon-reload'])
        if not ok:
            _log.warning("daemon-reload failed error=%s", err)
            return False
        ok, err = self._systemctl(['restart', APPS_TARGET])
        if not ok:
            _log.warning("failed to restart apps target error=%s", err)
        return ok
