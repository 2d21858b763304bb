"""Reverse-proxy rendering: one nginx virtual host per proxied service."""
from dataclasses import dataclass
from typing import Dict, List, Optional

from homestack.errors import RenderError
from homestack.models.config import ServiceSpec
from homestack.render.nginx import Blank, Block, Comment, Directive, Node, serialize

# Databases, caches and brokers: a port alone doesn't make these web services
NON_HTTP_PORTS = frozenset({
    5432, 3306, 27017, 6379, 9200, 5672, 1433, 1521, 5984, 8086, 9042, 7000, 7001,
})

FORWARDED_HEADERS = (
    ("Host", "$host"),
    ("X-Real-IP", "$remote_addr"),
    ("X-Forwarded-For", "$proxy_add_x_forwarded_for"),
    ("X-Forwarded-Proto", "$scheme"),
)


def service_hostname(key: str, service: ServiceSpec, base_domain: str) -> str:
    """Externally visible hostname: ``(domain or key).base_domain``."""
    return f"{service.domain or key}.{base_domain}"


def wants_proxy(service: ServiceSpec) -> bool:
    """Whether a service gets a virtual host.

    An explicit ``proxy`` flag wins; otherwise any service whose first port
    is not a well-known database/cache port is proxied.
    """
    if service.proxy is not None:
        return service.proxy
    return bool(service.ports) and service.ports[0] not in NON_HTTP_PORTS


@dataclass(frozen=True)
class ProxyConfigFragment:
    """Virtual-host configuration for one service."""

    service: str
    hostname: str
    upstream: str
    nodes: tuple

    @property
    def filename(self) -> str:
        return f"{self.service}.conf"

    def render(self) -> str:
        return serialize(self.nodes)


class ProxyRenderer:
    """Renders nginx virtual hosts and the unit's main nginx.conf."""

    def __init__(self, base_domain: str):
        self.base_domain = base_domain

    def render(self, key: str, service: ServiceSpec, port: Optional[int] = None) -> ProxyConfigFragment:
        """Render the virtual host for a service.

        Args:
            key: Service key (also the internal DNS name of the container)
            service: Service specification
            port: Internal port to proxy to (defaults to the first declared port)

        Raises:
            RenderError: If the service has no port to proxy to
        """
        if port is None:
            if not service.ports:
                raise RenderError("reverse proxy requested but the service declares no port", key)
            port = service.ports[0]

        hostname = service_hostname(key, service, self.base_domain)
        upstream = f"{key}:{port}"

        location = Block("location", ("/",), tuple(
            [Directive("proxy_pass", (f"http://{upstream}",))]
            + [Directive("proxy_set_header", (name, value)) for name, value in FORWARDED_HEADERS]
        ))
        nodes = (
            Comment(f"Service: {key}"),
            Block("server", (), (
                Directive("listen", ("80",)),
                Directive("server_name", (hostname,)),
                Blank(),
                location,
            )),
        )
        return ProxyConfigFragment(service=key, hostname=hostname, upstream=upstream, nodes=nodes)

    def render_unit(self, services: Dict[str, ServiceSpec]) -> List[ProxyConfigFragment]:
        """Fragments for every proxied service, sorted by service key."""
        return [
            self.render(key, services[key])
            for key in sorted(services)
            if wants_proxy(services[key])
        ]

    def render_main(self, unit: str) -> str:
        """Main nginx.conf: health endpoint plus the conf.d includes."""
        health = Block("server", (), (
            Directive("listen", ("80", "default_server")),
            Directive("server_name", ("_",)),
            Blank(),
            Block("location", ("/health",), (
                Directive("access_log", ("off",)),
                Directive("add_header", ("Content-Type", "text/plain")),
                Directive("return", ("200", "healthy")),
            )),
        ))
        http = Block("http", (), (
            Directive("include", ("/etc/nginx/mime.types",)),
            Directive("default_type", ("application/octet-stream",)),
            Blank(),
            Directive("access_log", ("/var/log/nginx/access.log",)),
            Directive("error_log", ("/var/log/nginx/error.log", "warn")),
            Blank(),
            Directive("sendfile", ("on",)),
            Directive("tcp_nopush", ("on",)),
            Directive("tcp_nodelay", ("on",)),
            Directive("keepalive_timeout", ("65",)),
            Directive("types_hash_max_size", ("2048",)),
            Blank(),
            health,
            Blank(),
            Directive("include", ("/etc/nginx/conf.d/*.conf",)),
        ))
        nodes: List[Node] = [
            Comment(f"Generated nginx configuration for: {unit}\nDO NOT EDIT - regenerate with 'homestack generate'"),
            Blank(),
            Block("events", (), (Directive("worker_connections", ("1024",)),)),
            Blank(),
            http,
        ]
        return serialize(nodes)
