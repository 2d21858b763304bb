"""Unified configuration models.

These are the typed, immutable forms of ``homelab.yaml``. Raw documents are
turned into them by :class:`homestack.config.validator.ConfigValidator`,
which also performs the cross-reference checks these models cannot do on
their own.
"""
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

RESERVED_SERVICE_KEYS = ("reverse-proxy",)

_SIZE_PATTERN = re.compile(r"^(\d+(?:\.\d+)?)\s*([A-Za-z]*)$")
_SIZE_UNITS = {
    "b": 1,
    "k": 1000, "kb": 1000, "ki": 1024,
    "m": 1000 ** 2, "mb": 1000 ** 2, "mi": 1024 ** 2,
    "g": 1000 ** 3, "gb": 1000 ** 3, "gi": 1024 ** 3,
    "t": 1000 ** 4, "tb": 1000 ** 4, "ti": 1024 ** 4,
}


class Backend(str, Enum):
    """Target orchestrator family."""

    SINGLE_HOST = "single_host"
    CLUSTER = "cluster"


# Accepted values of the legacy top-level ``deployment`` key
LEGACY_BACKENDS = {
    "docker_compose": Backend.SINGLE_HOST,
    "docker_swarm": Backend.CLUSTER,
}


def parse_size(value: str) -> int:
    """Parse a storage quantity like '10GB' or '2Gi' into bytes.

    Raises:
        ValueError: If the quantity is not positive or the unit is unknown
    """
    match = _SIZE_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid storage size '{value}'. Expected e.g. '10GB', '500M', '2Gi'")

    number, unit = match.groups()
    unit = (unit or "b").lower()
    if unit not in _SIZE_UNITS:
        raise ValueError(
            f"Unknown storage unit '{unit}' in '{value}'. "
            "Valid units: B, K/KB/Ki, M/MB/Mi, G/GB/Gi, T/TB/Ti"
        )

    quantity = float(number)
    if quantity <= 0:
        raise ValueError(f"Storage size must be positive. Got: {value}")
    return int(quantity * _SIZE_UNITS[unit])


class StorageSpec(BaseModel):
    """Tagged storage request: none, persistent, ephemeral or sized."""

    model_config = ConfigDict(frozen=True)

    kind: str = "none"
    size: Optional[str] = None

    @classmethod
    def parse(cls, value: Any) -> "StorageSpec":
        """Build a StorageSpec from its raw YAML form."""
        if isinstance(value, StorageSpec):
            return value
        if value is None or value is False:
            return cls(kind="none")
        if value is True:
            return cls(kind="persistent")
        if isinstance(value, dict):
            return cls(**value)
        if not isinstance(value, str):
            raise ValueError(f"Invalid storage value: {value!r}")

        text = value.strip()
        if text.lower() in ("none", "persistent", "ephemeral"):
            return cls(kind=text.lower())
        if text.lower().startswith("sized:"):
            text = text.split(":", 1)[1].strip()
        return cls(kind="sized", size=text)

    @model_validator(mode="after")
    def validate_kind(self) -> "StorageSpec":
        """Check the tag and, for sized storage, the quantity."""
        if self.kind not in ("none", "persistent", "ephemeral", "sized"):
            raise ValueError(
                f"Unknown storage kind '{self.kind}'. "
                "Valid kinds: none, persistent, ephemeral, or a size like '10GB'"
            )
        if self.kind == "sized":
            if not self.size:
                raise ValueError("Sized storage requires a quantity")
            parse_size(self.size)
        return self

    @property
    def needs_volume(self) -> bool:
        return self.kind in ("persistent", "sized")


class DeployStrategy(BaseModel):
    """Per-service rule selecting target machines."""

    model_config = ConfigDict(frozen=True)

    kind: str = "driver"
    machine: Optional[str] = None

    @classmethod
    def parse(cls, value: Any) -> "DeployStrategy":
        """Build a strategy from 'driver', 'all', 'random', 'any',
        'specific:<key>' or a bare machine key."""
        if isinstance(value, DeployStrategy):
            return value
        if value is None:
            return cls(kind="driver")
        if not isinstance(value, str):
            raise ValueError(f"Deploy strategy must be a string. Got: {value!r}")

        text = value.strip()
        if not text:
            raise ValueError("Deploy strategy cannot be empty")
        if text in ("driver", "all", "random", "any"):
            return cls(kind=text)
        if text.startswith("specific:"):
            machine = text.split(":", 1)[1].strip()
            if not machine:
                raise ValueError("'specific:' strategy requires a machine key")
            return cls(kind="specific", machine=machine)
        # Legacy form: a bare machine key
        return cls(kind="specific", machine=text)

    def __str__(self) -> str:
        if self.kind == "specific":
            return f"specific:{self.machine}"
        return self.kind


class ServiceResources(BaseModel):
    """Optional resource limits and reservations."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    cpu_limit: Optional[str] = None
    memory_limit: Optional[str] = None
    cpu_request: Optional[str] = None
    memory_request: Optional[str] = None

    @field_validator("cpu_limit", "memory_limit", "cpu_request", "memory_request", mode="before")
    @classmethod
    def stringify(cls, v):
        """Allow plain numbers like ``cpu_limit: 0.5``."""
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, bool):
            raise ValueError("Resource values must be strings or numbers")
        return str(v)


class MachineSpec(BaseModel):
    """A physical or virtual machine that can receive services."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    host: str = Field(..., description="Hostname or IP used for SSH")
    user: str = Field("root", description="SSH user")
    role: Optional[str] = None
    labels: Tuple[str, ...] = ()
    hostname: Optional[str] = Field(None, description="Node hostname for cluster placement")
    driver: bool = False

    @field_validator("host")
    @classmethod
    def validate_host(cls, v):
        if not v or not v.strip():
            raise ValueError("Machine host cannot be empty")
        return v.strip()

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v is not None and v not in ("manager", "worker"):
            raise ValueError(f"Role must be 'manager' or 'worker'. Got: {v}")
        return v

    @field_validator("labels", mode="before")
    @classmethod
    def normalize_labels(cls, v):
        """Labels are a set: stored sorted and de-duplicated."""
        if v is None:
            return ()
        if isinstance(v, str):
            v = [v]
        return tuple(sorted({str(label) for label in v}))


class SecretSpec(BaseModel):
    """A top-level secret: an external reference or a file."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    external: bool = True
    file: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def file_implies_not_external(cls, data):
        if isinstance(data, dict) and data.get("file") and "external" not in data:
            data = dict(data, external=False)
        return data

    @property
    def file_backed(self) -> bool:
        return bool(self.file)


class ServiceSpec(BaseModel):
    """A logical service declared in the unified configuration."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    image: str
    ports: Tuple[int, ...] = ()
    environment: Dict[str, str] = Field(default_factory=dict)
    storage: StorageSpec = Field(default_factory=StorageSpec)
    deploy: DeployStrategy = Field(default_factory=DeployStrategy)
    enabled: bool = True
    domain: Optional[str] = None
    overrides: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    secrets: Tuple[str, ...] = ()
    proxy: Optional[bool] = None
    resources: Optional[ServiceResources] = None

    @model_validator(mode="before")
    @classmethod
    def normalize_aliases(cls, data):
        """Fold the ``port`` and ``compose``/``swarm`` shorthands into their
        canonical fields."""
        if not isinstance(data, dict):
            return data
        data = dict(data)

        if "port" in data:
            if "ports" in data:
                raise ValueError("Use either 'port' or 'ports', not both")
            port = data.pop("port")
            data["ports"] = [] if port is None else [port]

        overrides = dict(data.get("overrides") or {})
        for alias, backend in (("compose", Backend.SINGLE_HOST.value), ("swarm", Backend.CLUSTER.value)):
            if alias in data:
                block = data.pop(alias)
                if block:
                    merged = dict(overrides.get(backend) or {})
                    merged.update(block)
                    overrides[backend] = merged
        if overrides:
            data["overrides"] = overrides
        return data

    @field_validator("image")
    @classmethod
    def validate_image(cls, v):
        if not v or not v.strip():
            raise ValueError("Service image cannot be empty")
        return v.strip()

    @field_validator("ports", mode="before")
    @classmethod
    def validate_ports(cls, v):
        """Ports are integers 1-65535, unique, in declaration order."""
        if v is None:
            return ()
        if not isinstance(v, (list, tuple)):
            v = [v]
        seen = []
        for port in v:
            if isinstance(port, bool) or not isinstance(port, int):
                raise ValueError(f"Port must be an integer. Got: {port!r}")
            if not 1 <= port <= 65535:
                raise ValueError(f"Port {port} is out of range (1-65535)")
            if port in seen:
                raise ValueError(f"Port {port} is declared more than once")
            seen.append(port)
        return tuple(seen)

    @field_validator("environment", mode="before")
    @classmethod
    def stringify_environment(cls, v):
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("Service environment must be a mapping")
        return {str(key): _env_value(value) for key, value in v.items()}

    @field_validator("storage", mode="before")
    @classmethod
    def parse_storage(cls, v):
        return StorageSpec.parse(v)

    @field_validator("deploy", mode="before")
    @classmethod
    def parse_deploy(cls, v):
        return DeployStrategy.parse(v)

    @field_validator("overrides")
    @classmethod
    def validate_override_backends(cls, v):
        known = {backend.value for backend in Backend}
        for name in v:
            if name not in known:
                raise ValueError(
                    f"Unknown override backend '{name}'. Valid: {', '.join(sorted(known))}"
                )
        return v

    @field_validator("secrets", mode="before")
    @classmethod
    def normalize_secrets(cls, v):
        if v is None:
            return ()
        if isinstance(v, str):
            v = [v]
        return tuple(v)

    def override_for(self, backend: Union[Backend, str]) -> Dict[str, Any]:
        """Return the override block for a backend (empty if none)."""
        name = backend.value if isinstance(backend, Backend) else backend
        return dict(self.overrides.get(name) or {})


class UnifiedConfig(BaseModel):
    """The validated, immutable form of ``homelab.yaml``."""

    model_config = ConfigDict(frozen=True)

    version: str
    backend: Backend
    environment: Dict[str, str] = Field(default_factory=dict)
    machines: Dict[str, MachineSpec]
    services: Dict[str, ServiceSpec] = Field(default_factory=dict)
    secrets: Dict[str, SecretSpec] = Field(default_factory=dict)

    @property
    def driver(self) -> str:
        """Key of the default machine: the flagged one, else the first declared."""
        for key, machine in self.machines.items():
            if machine.driver:
                return key
        return next(iter(self.machines))

    def base_domain(self, fallback: str = "homelab.local") -> str:
        return self.environment.get("BASE_DOMAIN") or fallback

    def role_of(self, machine_key: str) -> str:
        """Cluster role of a machine; the driver defaults to manager."""
        role = self.machines[machine_key].role
        if role:
            return role
        return "manager" if machine_key == self.driver else "worker"

    def node_hostname(self, machine_key: str) -> str:
        return self.machines[machine_key].hostname or machine_key

    def managers(self) -> List[str]:
        return [key for key in self.machines if self.role_of(key) == "manager"]

    def enabled_services(self) -> Dict[str, ServiceSpec]:
        return {key: svc for key, svc in self.services.items() if svc.enabled}


def _env_value(value: Any) -> str:
    """Render a YAML scalar the way it should appear in a container env."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
