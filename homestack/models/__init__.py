"""Data models for homestack."""
from homestack.models.config import (
    Backend,
    DeployStrategy,
    MachineSpec,
    SecretSpec,
    ServiceResources,
    ServiceSpec,
    StorageSpec,
    UnifiedConfig,
)

__all__ = [
    'Backend',
    'DeployStrategy',
    'MachineSpec',
    'SecretSpec',
    'ServiceResources',
    'ServiceSpec',
    'StorageSpec',
    'UnifiedConfig',
]
