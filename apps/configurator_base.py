# HEARTH v1.0
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass
class HookContext:
    '''
    Deadline and cancellation for one hook invocation.
    Waits consult remaining() and stop as soon as cancel is set.
    '''
    cancel: threading.Event = field(default_factory=threading.Event)
    deadline: Optional[float] = None  # time.monotonic() value

    @classmethod
    def with_timeout(cls, seconds, cancel=None):
        return cls(cancel=cancel or threading.Event(), deadline=time.monotonic() + seconds)

    def remaining(self):
        '''Seconds left before the deadline, None when unbounded'''
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def cancelled(self):
        return self.cancel.is_set()

    def expired(self):
        return self.deadline is not None and time.monotonic() >= self.deadline

    def child(self, timeout):
        '''Context sharing the cancel event, bounded by timeout and our deadline'''
        deadline = time.monotonic() + timeout
        if self.deadline is not None:
            deadline = min(deadline, self.deadline)
        return HookContext(cancel=self.cancel, deadline=deadline)


@dataclass
class AppState:
    '''Hook input, rebuilt from the app record on every invocation'''
    name: str
    data_path: Path
    shared_data_path: Path
    port: int = 0
    integrations: dict = field(default_factory=dict)  # integration -> [provider apps]
    options: dict = field(default_factory=dict)

    def has_integration(self, integration):
        return bool(self.integrations.get(integration))

    def providers(self, integration):
        return list(self.integrations.get(integration, []))


class Configurator(ABC):
    '''
    Base class for per-app configuration hooks.
    Every managed app that needs setup implements one of these.
    '''

    @property
    @abstractmethod
    def name(self):
        '''App name this configurator handles'''

    @abstractmethod
    def pre_start(self, ctx, state):
        '''Prepare files and directories before the container starts.
        Must be idempotent.'''

    @abstractmethod
    def health_check(self, ctx):
        '''Block until the app accepts configuration calls'''

    @abstractmethod
    def post_start(self, ctx, state):
        '''Configure the running app. Must check before it creates.'''
