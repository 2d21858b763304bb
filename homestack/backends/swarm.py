"""Cluster backend: one Docker Swarm stack for the whole cluster."""
import hashlib
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

STACK_VERSION = "3.8"
RESTART_CONDITION = "any"

# Hex digits of the content digest in a config's name
CONFIG_DIGEST_LENGTH = 12


class SwarmTranslator(BackendTranslator):
    """Translates services into Swarm stack service definitions.

    Placement is expressed as constraints instead of duplication: the
    scheduler never gets to pick a machine the resolver didn't choose.
    """

    backend = Backend.CLUSTER
    descriptor_filename = "docker-stack.yaml"

    def translate(self, key: str, service: ServiceSpec, machines: Sequence[str]) -> List[ServiceDescriptor]:
        if not machines:
            raise RenderError("service resolved to no machines", key)

        override = service.override_for(self.backend)
        replicas = override.pop("replicas", None)
        health_path = override.pop("health_check", None)

        body: Dict[str, Any] = {"image": service.image}

        published = self.published(service)
        if published:
            body["ports"] = [f"{port}:{port}" for port in published]

        environment = self.environment(service)
        if environment:
            body["environment"] = environment

        volumes = self.storage_volumes(key, service)
        if service.storage.kind == "ephemeral":
            body["volumes"] = [{"type": "tmpfs", "target": DATA_MOUNT}]
        elif volumes:
            body["volumes"] = [f"{self.volume_name(key)}:{DATA_MOUNT}"]

        if service.secrets:
            body["secrets"] = sorted(service.secrets)

        body["networks"] = [NETWORK_NAME]
        body["deploy"] = self._deploy(key, service, machines, replicas)
        if health_path is not None:
            body["healthcheck"] = self.healthcheck(key, service, health_path)

        body = self.apply_overrides(key, body, override)

        return [
            ServiceDescriptor(
                service=key,
                body=body,
                volumes=volumes,
                secrets=tuple(sorted(service.secrets)),
                published_ports=published,
            )
        ]

    def build_document(
        self,
        unit: str,
        descriptors: Sequence[ServiceDescriptor],
        fragments: Sequence[ProxyConfigFragment],
        proxy_main: str = "",
    ) -> Dict[str, Any]:
        """Stack document; every top-level secret is declared."""
        # Ingress ports are cluster-wide
        self.check_port_conflicts(unit, descriptors)
        ordered = sorted(descriptors, key=lambda d: d.service)

        services: Dict[str, Any] = {}
        if fragments:
            services[PROXY_SERVICE] = self._proxy_service(fragments)
        for descriptor in ordered:
            services[descriptor.service] = descriptor.body

        document: Dict[str, Any] = {
            "version": STACK_VERSION,
            "services": services,
            "networks": {NETWORK_NAME: {"driver": "overlay", "attachable": True}},
        }

        volumes: Dict[str, Dict[str, Any]] = {}
        for descriptor in ordered:
            volumes.update(descriptor.volumes)
        if volumes:
            document["volumes"] = {name: volumes[name] for name in sorted(volumes)}

        if self.config.secrets:
            document["secrets"] = {
                name: self._secret(name) for name in sorted(self.config.secrets)
            }

        if fragments:
            configs = {"nginx_main": self._config("nginx_main", "./nginx/nginx.conf", proxy_main)}
            for fragment in sorted(fragments, key=lambda f: f.service):
                key = self._config_name(fragment)
                configs[key] = self._config(key, f"./nginx/conf.d/{fragment.filename}", fragment.render())
            document["configs"] = configs
        return document

    def _deploy(self, key: str, service: ServiceSpec, machines: Sequence[str], replicas: Any) -> Dict[str, Any]:
        strategy = service.deploy.kind
        deploy: Dict[str, Any]

        if strategy == "all":
            if replicas is not None:
                raise RenderError("replicas cannot be combined with 'deploy: all' (global mode)", key)
            deploy = {"mode": "global"}
        else:
            if replicas is not None and (isinstance(replicas, bool) or not isinstance(replicas, int) or replicas < 0):
                raise RenderError(f"replicas must be a non-negative integer. Got: {replicas!r}", key)
            hostname = self.config.node_hostname(machines[0])
            deploy = {
                "mode": "replicated",
                "replicas": 1 if replicas is None else replicas,
                "placement": {"constraints": [f"node.hostname == {hostname}"]},
            }

        resources = self.resources(service)
        if resources:
            deploy["resources"] = resources
        deploy["restart_policy"] = {"condition": RESTART_CONDITION}
        deploy["update_config"] = {"parallelism": 1, "delay": "10s"}
        return deploy

    def _secret(self, name: str) -> Dict[str, Any]:
        secret = self.config.secrets[name]
        if secret.file_backed:
            return {"file": secret.file}
        return {"external": True}

    def _config(self, key: str, path: str, content: str) -> Dict[str, Any]:
        """Swarm configs are immutable, so the name follows the content: a
        changed file becomes a new config instead of failing the stack update.
        """
        digest = hashlib.sha256(content.encode("utf-8")).hexdigest()[:CONFIG_DIGEST_LENGTH]
        return {"name": f"{self.settings.stack_name}_{key}_{digest}", "file": path}

    @staticmethod
    def _config_name(fragment: ProxyConfigFragment) -> str:
        return f"proxy_{fragment.service}"

    def _proxy_service(self, fragments: Sequence[ProxyConfigFragment]) -> Dict[str, Any]:
        configs = [{"source": "nginx_main", "target": "/etc/nginx/nginx.conf"}]
        for fragment in sorted(fragments, key=lambda f: f.service):
            configs.append({
                "source": self._config_name(fragment),
                "target": f"/etc/nginx/conf.d/{fragment.filename}",
            })

        return {
            "image": self.settings.proxy_image,
            "ports": [f"{port}:{port}" for port in PROXY_PORTS],
            "configs": configs,
            "networks": [NETWORK_NAME],
            "deploy": {
                "mode": "replicated",
                "replicas": 1,
                "placement": {"constraints": ["node.role == manager"]},
                "restart_policy": {"condition": RESTART_CONDITION},
            },
        }
