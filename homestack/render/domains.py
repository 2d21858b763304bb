"""Hostname mapping file (``.domains``)."""
import re
from typing import Dict

from homestack.models.config import ServiceSpec
from homestack.render.proxy import service_hostname


def domain_variable(key: str) -> str:
    """``photo-prism`` -> ``DOMAIN_PHOTO_PRISM``."""
    return "DOMAIN_" + re.sub(r"[^A-Z0-9]", "_", key.upper())


def render_domains(unit: str, services: Dict[str, ServiceSpec], base_domain: str) -> str:
    """One ``DOMAIN_<KEY>=<hostname>`` line per service, sorted by key.

    Args:
        unit: Unit name for the header comment
        services: Enabled services of the unit
        base_domain: Base domain appended to every service domain
    """
    lines = [f"# Domain variables for {unit} (generated by homestack)"]
    for key in sorted(services):
        lines.append(f"{domain_variable(key)}={service_hostname(key, services[key], base_domain)}")
    return "\n".join(lines) + "\n"
