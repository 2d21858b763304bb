"""Tests for atomic bundle writes."""
import stat

import pytest

from homestack.core.writer import BundleWriter
from homestack.errors import BundleWriteError
from homestack.models.bundle import UnitBundle
from homestack.models.config import ServiceSpec
from homestack.render.proxy import ProxyRenderer


def make_bundle(unit="driver", descriptor="services: {}\n", with_proxy=True):
    fragments = ()
    if with_proxy:
        fragments = (ProxyRenderer("lab.example").render("web", ServiceSpec(image="nginx", ports=(8080,))),)
    return UnitBundle(
        unit=unit,
        descriptor_name="docker-compose.yaml",
        descriptor=descriptor,
        service_names=("web",),
        proxy_main="events {}\n",
        proxy_fragments=fragments,
        domains="DOMAIN_WEB=web.lab.example\n",
        deploy_script="#!/bin/bash\n",
    )


class TestBundleWriter:
    """Stage, then rename into place."""

    def test_writes_every_file(self, tmp_path):
        path = BundleWriter(tmp_path).write(make_bundle())

        assert path == tmp_path / "driver"
        assert (path / "docker-compose.yaml").read_text() == "services: {}\n"
        assert (path / "nginx" / "nginx.conf").read_text() == "events {}\n"
        assert "server_name web.lab.example;" in (path / "nginx" / "conf.d" / "web.conf").read_text()
        assert (path / ".domains").read_text() == "DOMAIN_WEB=web.lab.example\n"

    def test_deploy_script_executable(self, tmp_path):
        path = BundleWriter(tmp_path).write(make_bundle())
        mode = (path / "deploy.sh").stat().st_mode
        assert mode & stat.S_IXUSR and mode & stat.S_IXOTH

    def test_bundle_dir_is_readable(self, tmp_path):
        path = BundleWriter(tmp_path).write(make_bundle())
        assert stat.S_IMODE(path.stat().st_mode) == 0o755

    def test_replaces_previous_bundle(self, tmp_path):
        writer = BundleWriter(tmp_path)
        writer.write(make_bundle())
        (tmp_path / "driver" / "leftover.txt").write_text("stale")

        writer.write(make_bundle(descriptor="services: {web: {}}\n", with_proxy=False))

        unit = tmp_path / "driver"
        assert (unit / "docker-compose.yaml").read_text() == "services: {web: {}}\n"
        assert not (unit / "leftover.txt").exists()
        assert not (unit / "nginx" / "conf.d" / "web.conf").exists()
        assert [p.name for p in tmp_path.iterdir()] == ["driver"]

    def test_creates_output_dir(self, tmp_path):
        output = tmp_path / "generated"
        BundleWriter(output).write(make_bundle())
        assert (output / "driver" / "deploy.sh").exists()

    def test_failure_raises_bundle_write_error(self, tmp_path):
        blocker = tmp_path / "generated"
        blocker.write_text("not a directory")

        with pytest.raises(BundleWriteError, match="driver"):
            BundleWriter(blocker).write(make_bundle())

    @pytest.mark.parametrize("unit", ["../escaped", "nested/unit", "..", ""])
    def test_unit_must_be_plain_name(self, tmp_path, unit):
        output = tmp_path / "generated"

        with pytest.raises(BundleWriteError, match="not a plain directory name"):
            BundleWriter(output).write(make_bundle(unit=unit))

        assert not (tmp_path / "escaped").exists()
        assert not output.exists()


class TestPrune:
    """Removing bundles of units that are gone."""

    def test_removes_only_stale_bundles(self, tmp_path):
        writer = BundleWriter(tmp_path)
        writer.write(make_bundle(unit="driver"))
        writer.write(make_bundle(unit="node-01"))
        (tmp_path / "backups").mkdir()

        removed = writer.prune(["driver"], ["docker-compose.yaml"])

        assert removed == ["node-01"]
        assert sorted(p.name for p in tmp_path.iterdir()) == ["backups", "driver"]

    def test_directory_without_descriptor_kept(self, tmp_path):
        writer = BundleWriter(tmp_path)
        writer.write(make_bundle(unit="node-01"))

        assert writer.prune([], ["docker-stack.yaml"]) == []
        assert (tmp_path / "node-01").is_dir()

    def test_missing_output_dir(self, tmp_path):
        assert BundleWriter(tmp_path / "absent").prune([], ["docker-compose.yaml"]) == []


class TestWriteFile:
    """Single-file atomic writes."""

    def test_write_file(self, tmp_path):
        path = BundleWriter(tmp_path).write_file("deploy-all.sh", "#!/bin/bash\n", executable=True)

        assert path.read_text() == "#!/bin/bash\n"
        assert path.stat().st_mode & stat.S_IXUSR
        assert [p.name for p in tmp_path.iterdir()] == ["deploy-all.sh"]

    def test_overwrite(self, tmp_path):
        writer = BundleWriter(tmp_path)
        writer.write_file("notes.txt", "one")
        writer.write_file("notes.txt", "two")
        assert (tmp_path / "notes.txt").read_text() == "two"

    def test_failure(self, tmp_path):
        blocker = tmp_path / "generated"
        blocker.write_text("")

        with pytest.raises(BundleWriteError):
            BundleWriter(blocker).write_file("deploy-all.sh", "")
