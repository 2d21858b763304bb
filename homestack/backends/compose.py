"""Single-host backend: one Docker Compose file per machine."""
from typing import Any, Dict, List, Sequence

from homestack.backends.base import (
    DATA_MOUNT,
    NETWORK_NAME,
    PROXY_PORTS,
    PROXY_SERVICE,
    BackendTranslator,
    ServiceDescriptor,
)
from homestack.errors import RenderError
from homestack.models.config import Backend, ServiceSpec
from homestack.render.proxy import ProxyConfigFragment

DEFAULT_RESTART = "unless-stopped"


class ComposeTranslator(BackendTranslator):
    """Translates services into Docker Compose service definitions.

    A service assigned to several machines produces one independent
    descriptor per machine; each lands in that machine's bundle.
    """

    backend = Backend.SINGLE_HOST
    descriptor_filename = "docker-compose.yaml"

    def translate(self, key: str, service: ServiceSpec, machines: Sequence[str]) -> List[ServiceDescriptor]:
        override = service.override_for(self.backend)
        if "replicas" in override:
            raise RenderError("replicas are only supported by the cluster backend", key)
        health_path = override.pop("health_check", None)

        body: Dict[str, Any] = {
            "image": service.image,
            "container_name": key,
        }

        published = self.published(service)
        if published:
            body["ports"] = [f"{port}:{port}" for port in published]
        exposed = [str(port) for port in service.ports if port in PROXY_PORTS]
        if exposed:
            body["expose"] = exposed

        environment = self.environment(service)
        if environment:
            body["environment"] = environment

        volumes = self.storage_volumes(key, service)
        if service.storage.kind == "ephemeral":
            body["volumes"] = [f"{self.settings.scratch_dir}/{key}:{DATA_MOUNT}"]
        elif volumes:
            body["volumes"] = [f"{self.volume_name(key)}:{DATA_MOUNT}"]

        secrets = self._secrets(key, service)
        if secrets:
            body["secrets"] = list(secrets)

        body["networks"] = [NETWORK_NAME]
        body["restart"] = DEFAULT_RESTART

        resources = self.resources(service)
        if resources:
            body["deploy"] = {"resources": resources}
        if health_path is not None:
            body["healthcheck"] = self.healthcheck(key, service, health_path)

        body = self.apply_overrides(key, body, override)

        return [
            ServiceDescriptor(
                service=key,
                body=body,
                machine=machine,
                volumes=volumes,
                secrets=secrets,
                published_ports=published,
            )
            for machine in machines
        ]

    def build_document(
        self,
        unit: str,
        descriptors: Sequence[ServiceDescriptor],
        fragments: Sequence[ProxyConfigFragment],
        proxy_main: str = "",
    ) -> Dict[str, Any]:
        """Compose document for one machine, services sorted by key."""
        self.check_port_conflicts(unit, descriptors)
        ordered = sorted(descriptors, key=lambda d: d.service)

        services: Dict[str, Any] = {}
        if fragments:
            services[PROXY_SERVICE] = self._proxy_service(fragments)
        for descriptor in ordered:
            services[descriptor.service] = descriptor.body

        document: Dict[str, Any] = {
            "name": self.settings.stack_name,
            "services": services,
            "networks": {NETWORK_NAME: {"driver": "bridge"}},
        }

        volumes = {}
        secrets = set()
        for descriptor in ordered:
            volumes.update(descriptor.volumes)
            secrets.update(descriptor.secrets)
        if volumes:
            document["volumes"] = {name: volumes[name] for name in sorted(volumes)}
        if secrets:
            document["secrets"] = {
                name: {"file": self.config.secrets[name].file} for name in sorted(secrets)
            }
        return document

    def _secrets(self, key: str, service: ServiceSpec):
        for name in service.secrets:
            if not self.config.secrets[name].file_backed:
                raise RenderError(
                    f"secret '{name}' is external; single_host deployments need a file-backed secret",
                    key,
                )
        return tuple(sorted(service.secrets))

    def _proxy_service(self, fragments: Sequence[ProxyConfigFragment]) -> Dict[str, Any]:
        return {
            "image": self.settings.proxy_image,
            "container_name": PROXY_SERVICE,
            "ports": [f"{port}:{port}" for port in PROXY_PORTS],
            "volumes": [
                "./nginx/nginx.conf:/etc/nginx/nginx.conf:ro",
                "./nginx/conf.d:/etc/nginx/conf.d:ro",
            ],
            "depends_on": sorted(fragment.service for fragment in fragments),
            "networks": [NETWORK_NAME],
            "restart": DEFAULT_RESTART,
        }
