"""Machine assignment: which machines each service targets."""
import hashlib
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Tuple

from homestack.core.logger import get_logger
from homestack.models.config import DeployStrategy, UnifiedConfig

logger = get_logger(__name__)


def stable_index(key: str, count: int) -> int:
    """Map a key onto ``range(count)`` identically across runs and processes.

    Python's built-in ``hash`` is salted per process, so a digest is used.
    """
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") % count


@dataclass(frozen=True)
class ResolvedAssignment:
    """Immutable mapping of service key to the ordered machines it targets."""

    assignments: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self):
        frozen = MappingProxyType({key: tuple(value) for key, value in self.assignments.items()})
        object.__setattr__(self, "assignments", frozen)

    def __iter__(self) -> Iterator[str]:
        return iter(self.assignments)

    def __len__(self) -> int:
        return len(self.assignments)

    def __contains__(self, service: object) -> bool:
        return service in self.assignments

    def machines_for(self, service: str) -> Tuple[str, ...]:
        return self.assignments.get(service, ())

    def targets(self, service: str, machine: str) -> bool:
        """True when ``machine`` is exactly one of the service's targets."""
        return machine in self.assignments.get(service, ())

    def services_for(self, machine: str) -> Tuple[str, ...]:
        """Services assigned to a machine, in declaration order."""
        return tuple(svc for svc, machines in self.assignments.items() if machine in machines)

    def as_dict(self) -> Dict[str, Tuple[str, ...]]:
        return dict(self.assignments)


class AssignmentResolver:
    """Resolves every service's deploy strategy to concrete machine keys.

    Resolution is total for a validated config and deterministic: the same
    configuration always yields the same assignment.
    """

    def resolve(self, config: UnifiedConfig) -> ResolvedAssignment:
        """Compute the assignment for every declared service.

        Disabled services are resolved too; enablement is filtered when
        bundles are generated.
        """
        assignments = {
            key: self.resolve_strategy(key, service.deploy, config)
            for key, service in config.services.items()
        }
        logger.debug(f"Resolved {len(assignments)} service assignments")
        return ResolvedAssignment(assignments)

    def resolve_strategy(
        self, service_key: str, strategy: DeployStrategy, config: UnifiedConfig
    ) -> Tuple[str, ...]:
        """Resolve one strategy.

        Args:
            service_key: Service the strategy belongs to (seeds random/any)
            strategy: Parsed deploy strategy
            config: Validated configuration

        Returns:
            Ordered tuple of machine keys
        """
        if strategy.kind == "all":
            return tuple(config.machines)

        if strategy.kind == "specific":
            return (strategy.machine,)

        if strategy.kind in ("random", "any"):
            # 'any' and 'random' resolve identically
            candidates = sorted(config.machines)
            return (candidates[stable_index(service_key, len(candidates))],)

        return (config.driver,)
