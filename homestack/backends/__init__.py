"""Backend translators.

homestack targets two orchestrator families:
- single_host: Docker Compose, one bundle per machine
- cluster: Docker Swarm, one stack for the whole cluster
"""
from typing import Optional

from homestack.core.config import HomestackSettings
from homestack.models.config import Backend, UnifiedConfig

from .base import BackendTranslator, ServiceDescriptor
from .compose import ComposeTranslator
from .swarm import SwarmTranslator

TRANSLATORS = {
    Backend.SINGLE_HOST: ComposeTranslator,
    Backend.CLUSTER: SwarmTranslator,
}


def get_translator(config: UnifiedConfig, settings: Optional[HomestackSettings] = None) -> BackendTranslator:
    """Return the translator for the config's backend."""
    return TRANSLATORS[config.backend](config, settings)


__all__ = [
    'BackendTranslator',
    'ComposeTranslator',
    'ServiceDescriptor',
    'SwarmTranslator',
    'TRANSLATORS',
    'get_translator',
]
