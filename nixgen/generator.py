# HEARTH v1.0 - Declarative configuration generator
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from utils.errors import StorageError
from utils.fileutil import atomic_write, file_lock

_log = logging.getLogger(__name__)

GENERATED_MARKER = "# Generated by HEARTH - do not edit by hand"
NO_CHANGES = "No changes"
OPTION_PREFIX = "hearth.apps"


@dataclass
class AppConfig:
    enabled: bool = False
    integrations: dict = field(default_factory=dict)  # integration -> provider

    def to_dict(self):
        return {'enabled': self.enabled, 'integrations': dict(sorted(self.integrations.items()))}

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(enabled=bool(data.get('enabled', False)),
                   integrations=dict(data.get('integrations') or {}))


@dataclass
class Transaction:
    '''Desired state: app name -> AppConfig. Treated as a value.'''
    apps: dict = field(default_factory=dict)

    def copy(self):
        return Transaction({
            name: AppConfig(cfg.enabled, dict(cfg.integrations))
            for name, cfg in self.apps.items()
        })

    def enabled_apps(self):
        return sorted(name for name, cfg in self.apps.items() if cfg.enabled)

    def to_dict(self):
        return {name: self.apps[name].to_dict() for name in sorted(self.apps)}

    @classmethod
    def from_dict(cls, data):
        return cls({name: AppConfig.from_dict(cfg) for name, cfg in (data or {}).items()})


def _enabled(tx, name):
    cfg = tx.apps.get(name)
    return cfg is not None and cfg.enabled


def diff_lines(current, proposed):
    '''Human-readable changes from current to proposed, sorted by app name'''
    lines = []
    for name in sorted(set(current.apps) | set(proposed.apps)):
        was_enabled = _enabled(current, name)
        is_enabled = _enabled(proposed, name)

        if is_enabled and not was_enabled:
            lines.append(f"Install {name}")
        elif was_enabled and not is_enabled:
            lines.append(f"Remove {name}")
        elif was_enabled and is_enabled:
            before = current.apps[name].integrations
            after = proposed.apps[name].integrations
            for key in sorted(after):
                if before.get(key) != after[key]:
                    lines.append(f"Configure {name}.{key} = {after[key]}")
    return lines


def diff(current, proposed):
    '''Joined diff_lines, or the "No changes" sentinel'''
    lines = diff_lines(current, proposed)
    if not lines:
        return NO_CHANGES
    return "\n".join(lines)


def generate_config(tx):
    '''Render the Nix module text for tx. Same input, same bytes.'''
    out = [GENERATED_MARKER, "{ config, lib, pkgs, ... }:", "", "{"]
    for name in tx.enabled_apps():
        out.append(f"  {OPTION_PREFIX}.{name}.enable = true;")
    out.append("}")
    return "\n".join(out) + "\n"


class Generator:
    '''
    Writes the generated apps module and keeps the last applied
    transaction in a JSON sidecar (<stem>-state.json) beside it.
    '''

    def __init__(self, config_path):
        self.config_path = Path(config_path)
        self.state_path = self.config_path.with_name(f"{self.config_path.stem}-state.json")

    def load_current(self):
        '''Last applied transaction; a missing sidecar is an empty one'''
        try:
            raw = self.state_path.read_text(encoding='utf-8')
        except FileNotFoundError:
            return Transaction()
        except OSError as e:
            raise StorageError("read state file", self.state_path, e) from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError("failed to parse state file", self.state_path, e) from e
        if data is not None and not isinstance(data, dict):
            raise StorageError("failed to parse state file", self.state_path, "expected a JSON object")
        return Transaction.from_dict(data)

    def preview(self, tx):
        return generate_config(tx)

    def diff(self, current, proposed):
        return diff(current, proposed)

    def apply(self, tx):
        '''Persist tx as current and write the generated config'''
        with file_lock(self.state_path):
            atomic_write(self.state_path, json.dumps(tx.to_dict(), indent=2, sort_keys=True) + "\n")
            atomic_write(self.config_path, generate_config(tx))
        _log.info("applied transaction path=%s apps=%s", self.config_path, ",".join(tx.enabled_apps()))

    def snapshot(self):
        '''Raw bytes of the sidecar and config, for restore()'''
        return (_read_bytes(self.state_path), _read_bytes(self.config_path))

    def restore(self, snapshot):
        '''Put back files captured by snapshot(); absent files are removed'''
        state, config = snapshot
        with file_lock(self.state_path):
            for path, data in ((self.state_path, state), (self.config_path, config)):
                if data is None:
                    try:
                        path.unlink()
                    except FileNotFoundError:
                        pass
                else:
                    atomic_write(path, data)
        _log.info("restored previous configuration path=%s", self.config_path)


def _read_bytes(path):
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None
    except OSError as e:
        raise StorageError("read", path, e) from e
