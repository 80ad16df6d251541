# HEARTH v1.0 - Container engine client over the local control socket
import logging
from dataclasses import dataclass, field
from typing import List

import docker
import requests
from docker.utils import parse_repository_tag

from utils.errors import StorageError

_log = logging.getLogger(__name__)

DEFAULT_STOP_TIMEOUT = 10
# Pinned so constructing the client never touches the socket
API_VERSION = '1.41'


@dataclass
class PortMapping:
    host_port: int
    container_port: int
    protocol: str = 'tcp'


@dataclass
class Mount:
    source: str
    target: str
    read_only: bool = False


@dataclass
class ContainerSpec:
    name: str
    image: str
    env: dict = field(default_factory=dict)
    ports: List[PortMapping] = field(default_factory=list)
    volumes: List[Mount] = field(default_factory=list)
    labels: dict = field(default_factory=dict)


@dataclass
class ContainerInfo:
    id: str
    name: str
    image: str
    state: str
    status: str = ''
    labels: dict = field(default_factory=dict)


class ContainerClient:
    '''
    Thin synchronous client for a Docker-compatible engine (podman works too).
    One request per call, no retries.
    '''

    def __init__(self, socket_path, timeout=30, api=None):
        self.socket_path = socket_path
        self._api = api or docker.APIClient(base_url=f"unix://{socket_path}", timeout=timeout, version=API_VERSION)

    def _call(self, operation, target, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (docker.errors.DockerException, requests.RequestException) as e:
            raise StorageError(operation, target, e) from e

    def ping(self):
        '''True if the engine answers'''
        try:
            return bool(self._api.ping())
        except (docker.errors.DockerException, requests.RequestException) as e:
            _log.debug("container engine ping failed socket=%s error=%s", self.socket_path, e)
            return False

    def pull_image(self, image):
        repository, tag = parse_repository_tag(image)
        self._call("pull image", image, self._api.pull, repository, tag=tag or 'latest')
        _log.info("pulled image image=%s", image)

    def create_container(self, spec):
        '''Create a container from spec and return its id'''
        port_bindings = {f"{p.container_port}/{p.protocol}": p.host_port for p in spec.ports}
        binds = [f"{m.source}:{m.target}:{'ro' if m.read_only else 'rw'}" for m in spec.volumes]
        host_config = self._api.create_host_config(port_bindings=port_bindings or None, binds=binds or None)

        result = self._call(
            "create container", spec.name, self._api.create_container,
            spec.image,
            name=spec.name,
            environment=dict(spec.env),
            ports=[(p.container_port, p.protocol) for p in spec.ports] or None,
            labels=dict(spec.labels),
            host_config=host_config,
        )
        return result['Id']

    def start(self, name):
        self._call("start container", name, self._api.start, name)

    def stop(self, name, timeout=DEFAULT_STOP_TIMEOUT):
        self._call("stop container", name, self._api.stop, name, timeout=timeout)

    def remove(self, name, force=False):
        self._call("remove container", name, self._api.remove_container, name, force=force)

    def list_containers(self):
        raw = self._call("list containers", self.socket_path, self._api.containers, all=True)
        containers = []
        for c in raw:
            names = c.get('Names') or ['']
            containers.append(ContainerInfo(
                id=c.get('Id', ''),
                name=names[0].lstrip('/'),
                image=c.get('Image', ''),
                state=c.get('State', ''),
                status=c.get('Status', ''),
                labels=c.get('Labels') or {},
            ))
        return containers

    def get_container(self, name):
        '''Inspect one container. Returns None when it does not exist.'''
        try:
            data = self._api.inspect_container(name)
        except docker.errors.NotFound:
            return None
        except (docker.errors.DockerException, requests.RequestException) as e:
            raise StorageError("inspect container", name, e) from e

        config = data.get('Config') or {}
        state = data.get('State') or {}
        return ContainerInfo(
            id=data.get('Id', ''),
            name=(data.get('Name') or name).lstrip('/'),
            image=config.get('Image', ''),
            state=state.get('Status', ''),
            status=state.get('Status', ''),
            labels=config.get('Labels') or {},
        )
