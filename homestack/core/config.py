"""homestack runtime settings."""
import os
from dataclasses import dataclass, replace


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer. Got: {raw!r}") from None


@dataclass(frozen=True)
class HomestackSettings:
    """Runtime settings for bundle generation.

    Attributes:
        output_dir: Directory bundles are written under (default: generated)
        workers: Worker threads used to generate units in parallel (default: 4)
        base_domain: Base domain used when the config has no BASE_DOMAIN
        scratch_dir: Host directory for ephemeral single-host storage
        stack_name: Swarm stack name used by the cluster deploy script
        proxy_image: Image of the generated reverse-proxy service
        lock_timeout: Seconds to wait for the output directory lock (0 = fail fast)
    """

    output_dir: str = "generated"
    workers: int = 4
    base_domain: str = "homelab.local"
    scratch_dir: str = "/tmp/homestack"
    stack_name: str = "homelab"
    proxy_image: str = "nginx:alpine"
    lock_timeout: int = 0

    @classmethod
    def from_env(cls) -> "HomestackSettings":
        """Create settings from environment variables.

        Environment variables:
            HOMESTACK_OUTPUT_DIR, HOMESTACK_WORKERS, HOMESTACK_BASE_DOMAIN,
            HOMESTACK_SCRATCH_DIR, HOMESTACK_STACK_NAME, HOMESTACK_PROXY_IMAGE,
            HOMESTACK_LOCK_TIMEOUT

        Returns:
            HomestackSettings with values from the environment or defaults

        Raises:
            ValueError: If an integer setting is not an integer
        """
        return cls(
            output_dir=os.getenv("HOMESTACK_OUTPUT_DIR", cls.output_dir),
            workers=_int_env("HOMESTACK_WORKERS", cls.workers),
            base_domain=os.getenv("HOMESTACK_BASE_DOMAIN", cls.base_domain),
            scratch_dir=os.getenv("HOMESTACK_SCRATCH_DIR", cls.scratch_dir),
            stack_name=os.getenv("HOMESTACK_STACK_NAME", cls.stack_name),
            proxy_image=os.getenv("HOMESTACK_PROXY_IMAGE", cls.proxy_image),
            lock_timeout=_int_env("HOMESTACK_LOCK_TIMEOUT", cls.lock_timeout),
        )

    def with_overrides(self, **changes) -> "HomestackSettings":
        """Return a copy with the non-None keyword arguments applied."""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})
