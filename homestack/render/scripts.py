"""Deploy script generation for bundles."""
from shlex import quote
from typing import Sequence

from homestack.models.config import MachineSpec

REMOTE_DIR = "~/homelab"


class DeployScriptGenerator:
    """Generates the executable scripts shipped inside each bundle.

    Every value taken from the configuration is shell-quoted.
    """

    def generate_compose_script(self, machine_key: str, machine: MachineSpec, descriptor: str) -> str:
        """Script that pushes a single-host bundle and runs docker compose on it."""
        target = quote(f"{machine.user}@{machine.host}")
        return f"""#!/bin/bash
# Deployment script for machine: {machine_key}
# Generated by homestack - DO NOT EDIT
set -euo pipefail

MACHINE_NAME={quote(machine_key)}
TARGET={target}
REMOTE_DIR={quote(REMOTE_DIR)}
LOCAL_DIR="$(cd "$(dirname "${{BASH_SOURCE[0]}}")" && pwd)"

echo "🚀 Deploying to $MACHINE_NAME ($TARGET)..."

ssh "$TARGET" "mkdir -p $REMOTE_DIR"
scp -r "$LOCAL_DIR/{descriptor}" "$LOCAL_DIR/nginx" "$LOCAL_DIR/.domains" "$TARGET:$REMOTE_DIR/"

ssh "$TARGET" "cd $REMOTE_DIR && docker compose -f {descriptor} pull"
ssh "$TARGET" "cd $REMOTE_DIR && docker compose -f {descriptor} up -d --remove-orphans"
ssh "$TARGET" "cd $REMOTE_DIR && docker compose -f {descriptor} ps"

echo "✅ Deployment to $MACHINE_NAME completed"
"""

    def generate_stack_script(
        self, manager_key: str, manager: MachineSpec, descriptor: str, stack_name: str
    ) -> str:
        """Script that pushes the cluster bundle to a manager and deploys the stack."""
        target = quote(f"{manager.user}@{manager.host}")
        return f"""#!/bin/bash
# Cluster deployment script (manager: {manager_key})
# Generated by homestack - DO NOT EDIT
set -euo pipefail

STACK_NAME={quote(stack_name)}
TARGET={target}
REMOTE_DIR={quote(REMOTE_DIR)}
LOCAL_DIR="$(cd "$(dirname "${{BASH_SOURCE[0]}}")" && pwd)"

echo "🚀 Deploying stack $STACK_NAME via $TARGET..."

ssh "$TARGET" "mkdir -p $REMOTE_DIR"
scp -r "$LOCAL_DIR/{descriptor}" "$LOCAL_DIR/nginx" "$LOCAL_DIR/.domains" "$TARGET:$REMOTE_DIR/"

ssh "$TARGET" "cd $REMOTE_DIR && docker stack deploy --with-registry-auth -c {descriptor} $STACK_NAME"
ssh "$TARGET" "docker stack services $STACK_NAME"

echo "✅ Stack $STACK_NAME deployed"
"""

    def generate_master_script(self, units: Sequence[str]) -> str:
        """Script that runs every unit's deploy.sh in order, stopping on failure."""
        lines = [
            "#!/bin/bash",
            "# Deploy every generated bundle",
            "# Generated by homestack - DO NOT EDIT",
            "set -euo pipefail",
            "",
            'SCRIPT_DIR="$(cd "$(dirname "${BASH_SOURCE[0]}")" && pwd)"',
            "",
        ]
        for unit in units:
            lines.append(f"echo {quote(f'📦 Deploying to {unit}...')}")
            lines.append(f'"$SCRIPT_DIR"/{quote(unit)}/deploy.sh')
            lines.append("")
        lines.append('echo "🎉 All deployments completed"')
        return "\n".join(lines) + "\n"
