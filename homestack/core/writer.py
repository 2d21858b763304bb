"""Atomic bundle writes: stage in a temp directory, then rename into place."""
import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Iterable, List, Union

from homestack.core.logger import get_logger
from homestack.errors import BundleWriteError
from homestack.models.bundle import DEPLOY_SCRIPT, UnitBundle

logger = get_logger(__name__)

EXECUTABLE = 0o755
DIRECTORY_MODE = 0o755


class BundleWriter:
    """Writes unit bundles under an output directory.

    Nothing becomes visible at ``<output_dir>/<unit>`` until the whole bundle
    has been written; a crash leaves at most a hidden staging directory.
    """

    def __init__(self, output_dir: Union[str, Path]):
        self.output_dir = Path(output_dir)

    def write(self, bundle: UnitBundle) -> Path:
        """Write a bundle, replacing any previous output for the unit.

        Returns:
            Path of the unit's bundle directory

        Raises:
            BundleWriteError: If any filesystem operation fails
        """
        if not bundle.unit or bundle.unit == ".." or Path(bundle.unit).name != bundle.unit:
            raise BundleWriteError(f"Unit name {bundle.unit!r} is not a plain directory name")
        target = self.output_dir / bundle.unit
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix=f".{bundle.unit}.", suffix=".staging", dir=self.output_dir))
            try:
                root = staging.resolve()
                for relative, content in bundle.files().items():
                    path = staging / relative
                    if root not in path.resolve().parents:
                        raise BundleWriteError(f"Bundle file {relative!r} escapes the bundle directory")
                    path.parent.mkdir(parents=True, exist_ok=True)
                    path.write_text(content)
                    if relative == DEPLOY_SCRIPT:
                        path.chmod(EXECUTABLE)
                staging.chmod(DIRECTORY_MODE)
                self._swap(staging, target)
            except BaseException:
                shutil.rmtree(staging, ignore_errors=True)
                raise
        except OSError as exc:
            raise BundleWriteError(f"Failed to write bundle for {bundle.unit}: {exc}") from exc

        logger.debug(f"Wrote bundle {bundle.unit} -> {target}")
        return target

    def write_file(self, name: str, content: str, executable: bool = False) -> Path:
        """Atomically write a single file directly under the output directory."""
        target = self.output_dir / name
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            fd, temp_name = tempfile.mkstemp(prefix=f".{name}.", dir=self.output_dir)
            try:
                with os.fdopen(fd, "w") as f:
                    f.write(content)
                if executable:
                    os.chmod(temp_name, EXECUTABLE)
                os.replace(temp_name, target)
            except BaseException:
                if os.path.exists(temp_name):
                    os.unlink(temp_name)
                raise
        except OSError as exc:
            raise BundleWriteError(f"Failed to write {target}: {exc}") from exc
        return target

    def _swap(self, staging: Path, target: Path) -> None:
        """Move the staged bundle into place, retiring the previous one."""
        if not target.exists():
            os.rename(staging, target)
            return

        retired = target.with_name(f".{target.name}.{os.getpid()}.{threading.get_ident()}.old")
        os.rename(target, retired)
        try:
            os.rename(staging, target)
        except OSError:
            os.rename(retired, target)
            raise
        shutil.rmtree(retired, ignore_errors=True)

    def prune(self, keep: Iterable[str], descriptor_names: Iterable[str]) -> List[str]:
        """Remove bundles of units that are no longer generated.

        Only directories that look like a bundle (a deploy script beside a
        known descriptor) are removed; anything else in the output directory
        is left alone.

        Returns:
            Names of the removed unit directories, sorted
        """
        if not self.output_dir.is_dir():
            return []
        keep = set(keep)
        descriptor_names = tuple(descriptor_names)
        removed = []
        try:
            for entry in sorted(self.output_dir.iterdir()):
                if entry.name.startswith(".") or entry.name in keep or not entry.is_dir() or entry.is_symlink():
                    continue
                if not (entry / DEPLOY_SCRIPT).is_file():
                    continue
                if not any((entry / name).is_file() for name in descriptor_names):
                    continue
                shutil.rmtree(entry)
                logger.info(f"Removed stale bundle {entry.name}")
                removed.append(entry.name)
        except OSError as exc:
            raise BundleWriteError(f"Failed to remove stale bundles in {self.output_dir}: {exc}") from exc
        return removed
