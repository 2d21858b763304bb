"""Bundle generation: resolve, translate, render and write one bundle per unit."""
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from homestack.backends import TRANSLATORS, BackendTranslator, get_translator
from homestack.backends.base import PROXY_SERVICE
from homestack.config.validator import ConfigValidator
from homestack.core.config import HomestackSettings
from homestack.core.lock import output_lock
from homestack.core.logger import get_logger
from homestack.core.resolver import AssignmentResolver, ResolvedAssignment
from homestack.core.writer import BundleWriter
from homestack.errors import BundleWriteError, ConfigValidationError, RenderError
from homestack.models.bundle import GenerationReport, UnitBundle, UnitResult
from homestack.models.config import Backend, ServiceSpec, UnifiedConfig
from homestack.render.domains import render_domains
from homestack.render.proxy import ProxyRenderer
from homestack.render.scripts import DeployScriptGenerator

logger = get_logger(__name__)

CLUSTER_UNIT = "cluster"
MASTER_SCRIPT = "deploy-all.sh"


class BundleGenerator:
    """Turns a validated configuration into per-unit deployment bundles.

    Units are independent: a unit whose services cannot be rendered, or
    whose files cannot be written, is reported as failed while every other
    unit still completes.
    """

    def __init__(self, settings: Optional[HomestackSettings] = None):
        self.settings = settings or HomestackSettings()
        self.resolver = AssignmentResolver()
        self.scripts = DeployScriptGenerator()

    def generate_from_raw(self, raw: Any, output_dir: Union[str, Path, None] = None) -> GenerationReport:
        """Validate a raw document, then generate.

        Raises:
            ConfigValidationError: If the document has any issue; nothing is written
        """
        config, issues = ConfigValidator().validate(raw)
        if issues:
            raise ConfigValidationError(issues)
        return self.generate(config, output_dir)

    def units(self, config: UnifiedConfig, assignment: ResolvedAssignment) -> Dict[str, Tuple[str, ...]]:
        """Unit name -> enabled services it carries, in declaration order.

        Every declared machine is a single-host unit, even one without services.
        """
        enabled = config.enabled_services()
        if config.backend == Backend.CLUSTER:
            return {CLUSTER_UNIT: tuple(enabled)}
        return {
            machine: tuple(key for key in assignment.services_for(machine) if key in enabled)
            for machine in config.machines
        }

    def build(self, config: UnifiedConfig) -> List[UnitResult]:
        """Build every unit's bundle in memory without touching the filesystem."""
        assignment = self.resolver.resolve(config)
        translator = get_translator(config, self.settings)
        units = self.units(config, assignment)

        def build_one(unit: str) -> UnitResult:
            try:
                bundle = self.build_unit(config, assignment, translator, unit, units[unit])
            except RenderError as e:
                logger.error(f"Unit {unit} failed: {e}")
                return UnitResult(unit=unit, error=e)
            return UnitResult(unit=unit, bundle=bundle)

        with ThreadPoolExecutor(max_workers=max(1, self.settings.workers)) as pool:
            return list(pool.map(build_one, units))

    def build_unit(
        self,
        config: UnifiedConfig,
        assignment: ResolvedAssignment,
        translator: BackendTranslator,
        unit: str,
        service_keys: Tuple[str, ...],
    ) -> UnitBundle:
        """Assemble one unit's bundle.

        Raises:
            RenderError: If any service of the unit cannot be rendered
        """
        services: Dict[str, ServiceSpec] = {key: config.services[key] for key in service_keys}

        descriptors = []
        for key, service in services.items():
            machines = assignment.machines_for(key) if unit == CLUSTER_UNIT else (unit,)
            descriptors.extend(translator.translate(key, service, machines))

        base_domain = config.base_domain(self.settings.base_domain)
        proxy = ProxyRenderer(base_domain)
        fragments = proxy.render_unit(services)

        proxy_main = proxy.render_main(unit)
        document = translator.build_document(unit, descriptors, fragments, proxy_main)
        descriptor_name = translator.descriptor_filename

        if config.backend == Backend.CLUSTER:
            manager = config.managers()[0]
            deploy_script = self.scripts.generate_stack_script(
                manager, config.machines[manager], descriptor_name, self.settings.stack_name
            )
        else:
            deploy_script = self.scripts.generate_compose_script(unit, config.machines[unit], descriptor_name)

        return UnitBundle(
            unit=unit,
            descriptor_name=descriptor_name,
            descriptor=translator.dump(document),
            service_names=tuple(name for name in document["services"] if name != PROXY_SERVICE),
            proxy_main=proxy_main,
            proxy_fragments=tuple(fragments),
            domains=render_domains(unit, services, base_domain),
            deploy_script=deploy_script,
        )

    def generate(self, config: UnifiedConfig, output_dir: Union[str, Path, None] = None) -> GenerationReport:
        """Build and write every unit's bundle.

        Args:
            config: Validated configuration
            output_dir: Output directory (defaults to settings.output_dir)

        Returns:
            Per-unit report; failed units carry their error

        Raises:
            LockError: If another generation holds the output directory
        """
        output = Path(output_dir or self.settings.output_dir)
        report = GenerationReport(backend=config.backend.value, output_dir=output)
        writer = BundleWriter(output)

        logger.info(f"Generating {config.backend.value} bundles into {output}")

        with output_lock(output, timeout=self.settings.lock_timeout):
            results = self.build(config)

            def write_one(result: UnitResult) -> UnitResult:
                if not result.ok:
                    return result
                try:
                    result.path = writer.write(result.bundle)
                except BundleWriteError as e:
                    logger.error(f"Unit {result.unit} failed: {e}")
                    result.error = e
                return result

            with ThreadPoolExecutor(max_workers=max(1, self.settings.workers)) as pool:
                report.results = list(pool.map(write_one, results))

            # A failed unit keeps its previous bundle; only undeclared units go
            report.removed = writer.prune(
                (result.unit for result in report.results),
                (translator.descriptor_filename for translator in TRANSLATORS.values()),
            )

            if config.backend == Backend.SINGLE_HOST:
                units = [result.unit for result in report.succeeded]
                report.master_script = writer.write_file(
                    MASTER_SCRIPT, self.scripts.generate_master_script(units), executable=True
                )

        logger.info(
            f"Generated {len(report.succeeded)}/{len(report.results)} bundles"
            + (f" ({len(report.failed)} failed)" if report.failed else "")
        )
        return report
