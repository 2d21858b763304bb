"""Abstract base class for backend translators."""
import copy
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from homestack.core.config import HomestackSettings
from homestack.errors import RenderError
from homestack.models.config import Backend, ServiceSpec, UnifiedConfig
from homestack.render.proxy import ProxyConfigFragment

PROXY_SERVICE = "reverse-proxy"
NETWORK_NAME = "homelab"
DATA_MOUNT = "/data"

# Ports the generated reverse proxy publishes; services only expose them
PROXY_PORTS = (80, 443)


class _DescriptorDumper(yaml.SafeDumper):
    """Never emit anchors: shared objects are written out in full."""

    def ignore_aliases(self, data):
        return True


# ${VAR} or ${VAR:-default}
_ENV_TOKEN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


@dataclass(frozen=True)
class ServiceDescriptor:
    """Backend-specific definition of one service.

    ``machine`` is the target machine for single-host descriptors and None
    for the cluster descriptor. ``volumes`` and ``secrets`` are the top-level
    declarations the service needs in its document.
    """

    service: str
    body: Dict[str, Any]
    machine: Optional[str] = None
    volumes: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    secrets: Tuple[str, ...] = ()
    published_ports: Tuple[int, ...] = ()


def interpolate(value: str, context: Dict[str, str]) -> str:
    """Resolve ``${VAR}`` and ``${VAR:-default}`` against the global environment.

    Unknown plain tokens are left untouched for the orchestrator to resolve.
    """
    def replace(match):
        name, default = match.group(1), match.group(2)
        if name in context and context[name] != "":
            return context[name]
        if default is not None:
            return default
        if name in context:
            return ""
        return match.group(0)

    return _ENV_TOKEN.sub(replace, value)


def merge_overrides(base: Dict[str, Any], override: Dict[str, Any], path: str = "") -> Dict[str, Any]:
    """Deep-merge an override block into a descriptor; the override wins.

    Raises:
        RenderError: If the override replaces a mapping with a non-mapping
    """
    result = dict(base)
    for key, value in override.items():
        location = f"{path}{key}"
        if isinstance(result.get(key), dict):
            if not isinstance(value, dict):
                raise RenderError(
                    f"override '{location}' replaces a mapping with {type(value).__name__}"
                )
            result[key] = merge_overrides(result[key], value, f"{location}.")
        else:
            result[key] = copy.deepcopy(value)
    return result


class BackendTranslator(ABC):
    """Turns (service, assigned machines) pairs into backend descriptors."""

    backend: Backend
    descriptor_filename: str

    def __init__(self, config: UnifiedConfig, settings: Optional[HomestackSettings] = None):
        self.config = config
        self.settings = settings or HomestackSettings()

    @abstractmethod
    def translate(self, key: str, service: ServiceSpec, machines: Sequence[str]) -> List[ServiceDescriptor]:
        """Translate one service for its resolved machines.

        Args:
            key: Service key
            service: Service specification
            machines: Machine keys the service is assigned to

        Returns:
            Descriptors (one per machine for single-host, one for cluster)

        Raises:
            RenderError: If the service cannot be expressed for this backend
        """

    @abstractmethod
    def build_document(
        self,
        unit: str,
        descriptors: Sequence[ServiceDescriptor],
        fragments: Sequence[ProxyConfigFragment],
        proxy_main: str = "",
    ) -> Dict[str, Any]:
        """Assemble the complete descriptor document for a unit.

        ``proxy_main`` is the unit's rendered nginx.conf, for backends that
        ship it inside the descriptor.
        """

    def dump(self, document: Dict[str, Any]) -> str:
        """Serialize a descriptor document; key order is kept as built."""
        header = f"# Generated by homestack ({self.backend.value}) - DO NOT EDIT\n"
        return header + yaml.dump(
            document, Dumper=_DescriptorDumper, sort_keys=False, default_flow_style=False
        )

    def environment(self, service: ServiceSpec) -> Dict[str, str]:
        """Service environment with global tokens resolved, sorted by name."""
        context = self.config.environment
        return {name: interpolate(service.environment[name], context) for name in sorted(service.environment)}

    def resources(self, service: ServiceSpec) -> Dict[str, Any]:
        """``deploy.resources`` block, empty when no resources are declared."""
        res = service.resources
        if res is None:
            return {}
        block: Dict[str, Any] = {}
        limits = {k: v for k, v in (("cpus", res.cpu_limit), ("memory", res.memory_limit)) if v}
        reservations = {k: v for k, v in (("cpus", res.cpu_request), ("memory", res.memory_request)) if v}
        if limits:
            block["limits"] = limits
        if reservations:
            block["reservations"] = reservations
        return block

    def healthcheck(self, key: str, service: ServiceSpec, path: Any) -> Dict[str, Any]:
        """curl healthcheck against the first port; the path is used verbatim."""
        if not service.ports:
            raise RenderError("health_check requires the service to declare a port", key)
        return {
            "test": ["CMD", "curl", "-f", f"http://localhost:{service.ports[0]}{path}"],
            "interval": "30s",
            "timeout": "10s",
            "retries": 3,
        }

    def apply_overrides(self, key: str, body: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return merge_overrides(body, override)
        except RenderError as exc:
            raise RenderError(str(exc), key) from exc

    def storage_volumes(self, key: str, service: ServiceSpec) -> Dict[str, Dict[str, Any]]:
        """Top-level volume declarations for persistent and sized storage."""
        storage = service.storage
        if not storage.needs_volume:
            return {}
        volume: Dict[str, Any] = {"driver": "local"}
        if storage.kind == "sized":
            # Size is a hint for the operator; nothing enforces it here
            volume["labels"] = {"homestack.size": storage.size}
        return {self.volume_name(key): volume}

    @staticmethod
    def volume_name(key: str) -> str:
        return f"{key}_data"

    @staticmethod
    def check_port_conflicts(unit: str, descriptors: Sequence[ServiceDescriptor]) -> None:
        """Two services cannot publish the same host port in one unit."""
        owners: Dict[int, str] = {}
        for descriptor in descriptors:
            for port in descriptor.published_ports:
                if port in owners:
                    raise RenderError(
                        f"port {port} is published by both '{owners[port]}' and "
                        f"'{descriptor.service}' on {unit}"
                    )
                owners[port] = descriptor.service

    @staticmethod
    def published(service: ServiceSpec) -> Tuple[int, ...]:
        return tuple(port for port in service.ports if port not in PROXY_PORTS)
