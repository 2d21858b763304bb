"""Configuration validation logic.

The validator is a pure function over the raw YAML document: it never touches
the filesystem and it never stops at the first problem. Every issue found is
collected so a user sees the complete report in one run.
"""
import re
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from homestack.core.logger import get_logger
from homestack.errors import (
    ConfigIssue,
    ConfigReferenceError,
    SchemaError,
    UnsupportedBackendError,
)
from homestack.models.config import (
    LEGACY_BACKENDS,
    RESERVED_SERVICE_KEYS,
    Backend,
    DeployStrategy,
    MachineSpec,
    SecretSpec,
    ServiceSpec,
    UnifiedConfig,
)

logger = get_logger(__name__)

# Safe as a path component and as a Compose service or container name
KEY_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
KEY_RULE = "must start with a letter or digit and contain only letters, digits, '_', '.' or '-'"

REQUIRED_KEYS = ('version', 'backend', 'machines', 'services')


class ConfigValidator:
    """Validates a raw unified configuration and builds the typed model."""

    def validate(self, raw: Any) -> Tuple[Optional[UnifiedConfig], List[ConfigIssue]]:
        """Validate a raw configuration document.

        Args:
            raw: Parsed YAML document

        Returns:
            Tuple of (config, issues). ``config`` is None whenever ``issues``
            is non-empty; callers must not generate anything in that case.
        """
        if not isinstance(raw, dict):
            return None, [SchemaError("", "Configuration must be a mapping of top-level keys")]

        issues: List[ConfigIssue] = []

        version = self._check_version(raw, issues)
        backend = self._check_backend(raw, issues)
        environment = self._check_environment(raw, issues)
        machines = self._check_machines(raw, issues)
        secrets = self._check_secrets(raw, issues)
        services = self._check_services(raw, issues)

        self._check_deploy_references(raw, issues)
        self._check_secret_references(raw, issues)

        if backend == Backend.CLUSTER and machines:
            self._check_cluster_roles(machines, issues)
        elif backend == Backend.SINGLE_HOST:
            for key, machine in machines.items():
                if machine.role:
                    logger.debug(f"Machine '{key}' role '{machine.role}' ignored for single_host backend")

        if issues:
            return None, issues

        config = UnifiedConfig(
            version=version,
            backend=backend,
            environment=environment,
            machines=machines,
            services=services,
            secrets=secrets,
        )
        return config, []

    def _check_version(self, raw: Dict, issues: List[ConfigIssue]) -> Optional[str]:
        if 'version' not in raw or raw['version'] is None:
            issues.append(SchemaError("version", "Required field 'version' is missing"))
            return None

        version = raw['version']
        if isinstance(version, bool) or not isinstance(version, (str, int, float)):
            issues.append(SchemaError("version", f"Version must be a string. Got: {version!r}"))
            return None

        version = str(version).strip()
        if not version:
            issues.append(SchemaError("version", "Version cannot be empty"))
            return None
        return version

    def _check_backend(self, raw: Dict, issues: List[ConfigIssue]) -> Optional[Backend]:
        value = raw.get('backend')
        legacy = raw.get('deployment')

        if legacy is not None and not isinstance(legacy, str):
            issues.append(UnsupportedBackendError(
                "deployment", f"Deployment must be a string. Got: {legacy!r}"
            ))
            legacy = None
            if value is None:
                return None

        if value is None and legacy is not None:
            if legacy in LEGACY_BACKENDS:
                return LEGACY_BACKENDS[legacy]
            issues.append(UnsupportedBackendError(
                "deployment",
                f"Unsupported deployment '{legacy}'. Valid: {', '.join(sorted(LEGACY_BACKENDS))}",
            ))
            return None

        if value is None:
            issues.append(SchemaError("backend", "Required field 'backend' is missing"))
            return None

        try:
            backend = Backend(value)
        except ValueError:
            valid = ', '.join(b.value for b in Backend)
            issues.append(UnsupportedBackendError(
                "backend", f"Unsupported backend '{value}'. Valid: {valid}"
            ))
            return None

        if legacy is not None and LEGACY_BACKENDS.get(legacy) != backend:
            logger.warning(f"'deployment: {legacy}' disagrees with 'backend: {value}'; using backend")
        return backend

    def _check_environment(self, raw: Dict, issues: List[ConfigIssue]) -> Dict[str, str]:
        env = raw.get('environment')
        if env is None:
            return {}
        if not isinstance(env, dict):
            issues.append(SchemaError("environment", "Environment must be a mapping of NAME: value"))
            return {}

        result = {}
        for name, value in env.items():
            if isinstance(value, (dict, list)):
                issues.append(SchemaError(f"environment.{name}", "Environment values must be scalars"))
                continue
            result[str(name)] = "" if value is None else str(value)
        return result

    def _check_machines(self, raw: Dict, issues: List[ConfigIssue]) -> Dict[str, MachineSpec]:
        if 'machines' not in raw:
            issues.append(SchemaError("machines", "Required field 'machines' is missing"))
            return {}

        section = raw['machines']
        if section is None or section == {}:
            issues.append(SchemaError("machines", "At least one machine must be declared"))
            return {}
        if not isinstance(section, dict):
            issues.append(SchemaError("machines", "Machines must be a mapping of name: machine"))
            return {}

        machines: Dict[str, MachineSpec] = {}
        for key, entry in section.items():
            path = f"machines.{key}"
            if not self._valid_key(key):
                issues.append(SchemaError(path, f"Machine key {KEY_RULE}"))
                continue
            if not isinstance(entry, dict):
                issues.append(SchemaError(path, "Machine definition must be a mapping"))
                continue
            try:
                machines[key] = MachineSpec.model_validate(entry)
            except ValidationError as exc:
                issues.extend(self._convert(path, exc))

        flagged = [key for key, machine in machines.items() if machine.driver]
        if len(flagged) > 1:
            issues.append(SchemaError(
                "machines",
                f"Only one machine may be flagged as driver. Flagged: {', '.join(flagged)}",
            ))
        return machines

    def _check_secrets(self, raw: Dict, issues: List[ConfigIssue]) -> Dict[str, SecretSpec]:
        section = raw.get('secrets')
        if section is None:
            return {}
        if not isinstance(section, dict):
            issues.append(SchemaError("secrets", "Secrets must be a mapping of name: secret"))
            return {}

        secrets: Dict[str, SecretSpec] = {}
        for name, entry in section.items():
            path = f"secrets.{name}"
            if not self._valid_key(name):
                issues.append(SchemaError(path, f"Secret name {KEY_RULE}"))
                continue
            try:
                secrets[name] = SecretSpec.model_validate(entry or {})
            except ValidationError as exc:
                issues.extend(self._convert(path, exc))
        return secrets

    def _check_services(self, raw: Dict, issues: List[ConfigIssue]) -> Dict[str, ServiceSpec]:
        if 'services' not in raw:
            issues.append(SchemaError("services", "Required field 'services' is missing"))
            return {}

        section = raw['services']
        if section is None:
            return {}
        if not isinstance(section, dict):
            issues.append(SchemaError("services", "Services must be a mapping of name: service"))
            return {}

        services: Dict[str, ServiceSpec] = {}
        for key, entry in section.items():
            path = f"services.{key}"
            if not self._valid_key(key):
                issues.append(SchemaError(path, f"Service key {KEY_RULE}"))
                continue
            if key in RESERVED_SERVICE_KEYS:
                issues.append(SchemaError(path, f"Service key '{key}' is reserved"))
                continue
            if not isinstance(entry, dict):
                issues.append(SchemaError(path, "Service definition must be a mapping"))
                continue
            if 'image' not in entry:
                issues.append(SchemaError(f"{path}.image", "Required field 'image' is missing"))
                continue
            try:
                services[key] = ServiceSpec.model_validate(entry)
            except ValidationError as exc:
                issues.extend(self._convert(path, exc))
        return services

    def _check_deploy_references(self, raw: Dict, issues: List[ConfigIssue]) -> None:
        """Every strategy naming a machine must name a declared one.

        Runs over the raw document so disabled services and services with
        unrelated schema problems are still checked.
        """
        machines = raw.get('machines')
        services = raw.get('services')
        if not isinstance(services, dict):
            return
        declared = set(machines) if isinstance(machines, dict) else set()

        for key, entry in services.items():
            if not isinstance(entry, dict):
                continue
            try:
                strategy = DeployStrategy.parse(entry.get('deploy'))
            except ValueError:
                # Reported by the service schema check
                continue
            if strategy.kind == 'specific' and strategy.machine not in declared:
                issues.append(ConfigReferenceError(
                    f"services.{key}.deploy",
                    f"Deploy strategy '{strategy}' references undeclared machine '{strategy.machine}'",
                ))

    def _check_secret_references(self, raw: Dict, issues: List[ConfigIssue]) -> None:
        secrets = raw.get('secrets')
        services = raw.get('services')
        if not isinstance(services, dict):
            return
        declared = set(secrets) if isinstance(secrets, dict) else set()

        for key, entry in services.items():
            if not isinstance(entry, dict):
                continue
            names = entry.get('secrets') or []
            if isinstance(names, str):
                names = [names]
            if not isinstance(names, list):
                continue
            for name in names:
                if not isinstance(name, str):
                    # Reported by the service schema check
                    continue
                if name not in declared:
                    issues.append(ConfigReferenceError(
                        f"services.{key}.secrets",
                        f"Secret '{name}' is not declared in the top-level secrets section",
                    ))

    def _check_cluster_roles(self, machines: Dict[str, MachineSpec], issues: List[ConfigIssue]) -> None:
        flagged = [key for key, machine in machines.items() if machine.driver]
        driver = flagged[0] if flagged else next(iter(machines))

        def role_of(key):
            return machines[key].role or ("manager" if key == driver else "worker")

        if not any(role_of(key) == "manager" for key in machines):
            issues.append(SchemaError(
                "machines", "Cluster backend requires at least one machine with role 'manager'"
            ))
        if len(machines) == 1:
            logger.warning("Single machine cluster deployment - consider the single_host backend instead")

    @staticmethod
    def _valid_key(key: Any) -> bool:
        """Keys become directory, file, container and service names."""
        return isinstance(key, str) and bool(KEY_PATTERN.match(key))

    @staticmethod
    def _convert(path: str, exc: ValidationError) -> List[ConfigIssue]:
        """Turn each pydantic error into a SchemaError with a dotted path."""
        converted = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get('loc', ()))
            message = error.get('msg', 'invalid value')
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
            converted.append(SchemaError(f"{path}.{location}" if location else path, message))
        return converted
