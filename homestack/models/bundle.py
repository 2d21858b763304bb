"""Generated bundle models."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from homestack.render.proxy import ProxyConfigFragment

DEPLOY_SCRIPT = "deploy.sh"
DOMAINS_FILE = ".domains"
NGINX_MAIN = "nginx/nginx.conf"
NGINX_CONF_DIR = "nginx/conf.d"


@dataclass(frozen=True)
class UnitBundle:
    """Every artifact generated for one target unit.

    A unit is a machine for the single-host backend and the whole cluster
    for the cluster backend. Bundles are write-once: regenerating replaces
    the unit's directory entirely.
    """

    unit: str
    descriptor_name: str
    descriptor: str
    service_names: Tuple[str, ...]
    proxy_main: str
    proxy_fragments: Tuple[ProxyConfigFragment, ...]
    domains: str
    deploy_script: str

    def files(self) -> Dict[str, str]:
        """Relative path -> content, in a fixed order."""
        files = {
            self.descriptor_name: self.descriptor,
            NGINX_MAIN: self.proxy_main,
        }
        for fragment in self.proxy_fragments:
            files[f"{NGINX_CONF_DIR}/{fragment.filename}"] = fragment.render()
        files[DOMAINS_FILE] = self.domains
        files[DEPLOY_SCRIPT] = self.deploy_script
        return files

    @property
    def proxied_services(self) -> Tuple[str, ...]:
        return tuple(fragment.service for fragment in self.proxy_fragments)


@dataclass
class UnitResult:
    """Outcome of generating one unit."""

    unit: str
    bundle: Optional[UnitBundle] = None
    path: Optional[Path] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class GenerationReport:
    """Per-unit results of one generation run, in unit order."""

    backend: str
    output_dir: Path
    results: List[UnitResult] = field(default_factory=list)
    master_script: Optional[Path] = None
    removed: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.results)

    @property
    def succeeded(self) -> List[UnitResult]:
        return [result for result in self.results if result.ok]

    @property
    def failed(self) -> List[UnitResult]:
        return [result for result in self.results if not result.ok]

    def bundle(self, unit: str) -> Optional[UnitBundle]:
        for result in self.results:
            if result.unit == unit:
                return result.bundle
        return None
