"""Tests for the single-host (Docker Compose) translator."""
import pytest
import yaml

from homestack.backends import ComposeTranslator, get_translator
from homestack.backends.base import PROXY_SERVICE, interpolate, merge_overrides
from homestack.core.config import HomestackSettings
from homestack.errors import RenderError
from homestack.render.proxy import ProxyRenderer


@pytest.fixture
def config(single_host_raw, make_config):
    return make_config(single_host_raw)


@pytest.fixture
def translator(config):
    return ComposeTranslator(config, HomestackSettings())


def translate_one(translator, config, key, machine="driver"):
    [descriptor] = translator.translate(key, config.services[key], [machine])
    return descriptor


class TestInterpolate:
    """Global environment tokens."""

    def test_known_token(self):
        assert interpolate("tz=${TZ}", {"TZ": "UTC"}) == "tz=UTC"

    def test_default_used_when_unset(self):
        assert interpolate("${PORT:-8080}", {}) == "8080"

    def test_default_used_when_empty(self):
        assert interpolate("${PORT:-8080}", {"PORT": ""}) == "8080"

    def test_empty_value(self):
        assert interpolate("${PORT}", {"PORT": ""}) == ""

    def test_unknown_token_kept(self):
        assert interpolate("${HOSTNAME}/data", {"TZ": "UTC"}) == "${HOSTNAME}/data"


class TestMergeOverrides:
    """Deep merge of override blocks."""

    def test_nested_merge(self):
        base = {"deploy": {"resources": {"limits": {"cpus": "1"}}}, "restart": "unless-stopped"}
        override = {"deploy": {"resources": {"limits": {"memory": "1G"}}}, "restart": "always"}

        merged = merge_overrides(base, override)

        assert merged == {
            "deploy": {"resources": {"limits": {"cpus": "1", "memory": "1G"}}},
            "restart": "always",
        }
        assert base["restart"] == "unless-stopped"

    def test_lists_replaced(self):
        assert merge_overrides({"ports": ["80:80"]}, {"ports": ["81:81"]}) == {"ports": ["81:81"]}

    def test_mapping_replaced_by_scalar(self):
        with pytest.raises(RenderError, match="deploy.resources"):
            merge_overrides({"deploy": {"resources": {}}}, {"deploy": {"resources": "big"}})


class TestTranslate:
    """Service descriptors."""

    def test_basic_service(self, translator, config):
        body = translate_one(translator, config, "web").body

        assert body["image"] == "nginx:1.25"
        assert body["container_name"] == "web"
        assert body["ports"] == ["8080:8080"]
        assert body["networks"] == ["homelab"]
        assert body["restart"] == "unless-stopped"

    def test_environment_resolved_and_sorted(self, single_host_raw, make_config):
        single_host_raw["services"]["web"]["environment"] = {
            "ZONE": "${TZ}",
            "APP_URL": "https://${BASE_DOMAIN}",
            "HOST": "${HOSTNAME}",
        }
        config = make_config(single_host_raw)

        body = translate_one(ComposeTranslator(config), config, "web").body

        assert list(body["environment"]) == ["APP_URL", "HOST", "ZONE"]
        assert body["environment"]["ZONE"] == "Europe/Stockholm"
        assert body["environment"]["APP_URL"] == "https://lab.example"
        assert body["environment"]["HOST"] == "${HOSTNAME}"

    def test_one_descriptor_per_machine(self, translator, config):
        descriptors = translator.translate("monitor", config.services["monitor"], ["driver", "node-01", "node-02"])

        assert [d.machine for d in descriptors] == ["driver", "node-01", "node-02"]
        assert all(d.body == descriptors[0].body for d in descriptors)

    def test_proxy_ports_exposed_not_published(self, single_host_raw, make_config):
        single_host_raw["services"]["web"]["ports"] = [80, 9000]
        del single_host_raw["services"]["web"]["port"]
        config = make_config(single_host_raw)

        descriptor = translate_one(ComposeTranslator(config), config, "web")

        assert descriptor.body["ports"] == ["9000:9000"]
        assert descriptor.body["expose"] == ["80"]
        assert descriptor.published_ports == (9000,)

    def test_persistent_storage(self, translator, config):
        descriptor = translate_one(translator, config, "db", "node-01")

        assert descriptor.body["volumes"] == ["db_data:/data"]
        assert descriptor.volumes == {"db_data": {"driver": "local"}}

    def test_ephemeral_storage(self, single_host_raw, make_config):
        single_host_raw["services"]["web"]["storage"] = "ephemeral"
        config = make_config(single_host_raw)
        translator = ComposeTranslator(config, HomestackSettings(scratch_dir="/srv/scratch"))

        descriptor = translate_one(translator, config, "web")

        assert descriptor.body["volumes"] == ["/srv/scratch/web:/data"]
        assert descriptor.volumes == {}

    def test_sized_storage(self, single_host_raw, make_config):
        single_host_raw["services"]["web"]["storage"] = "20GB"
        config = make_config(single_host_raw)

        descriptor = translate_one(ComposeTranslator(config), config, "web")

        assert descriptor.body["volumes"] == ["web_data:/data"]
        assert descriptor.volumes["web_data"]["labels"] == {"homestack.size": "20GB"}

    def test_file_secret_attached(self, translator, config):
        descriptor = translate_one(translator, config, "db", "node-01")
        assert descriptor.body["secrets"] == ["db_password"]
        assert descriptor.secrets == ("db_password",)

    def test_external_secret_rejected(self, single_host_raw, make_config):
        single_host_raw["secrets"]["api_token"] = {"external": True}
        single_host_raw["services"]["web"]["secrets"] = ["api_token"]
        config = make_config(single_host_raw)

        with pytest.raises(RenderError, match="external") as exc_info:
            translate_one(ComposeTranslator(config), config, "web")
        assert exc_info.value.service == "web"

    def test_resources(self, single_host_raw, make_config):
        single_host_raw["services"]["web"]["resources"] = {"cpu_limit": 0.5, "memory_limit": "512M"}
        config = make_config(single_host_raw)

        body = translate_one(ComposeTranslator(config), config, "web").body

        assert body["deploy"] == {"resources": {"limits": {"cpus": "0.5", "memory": "512M"}}}

    def test_override_merged_last(self, single_host_raw, make_config):
        single_host_raw["services"]["web"]["compose"] = {
            "restart": "always",
            "labels": {"traefik.enable": "false"},
        }
        config = make_config(single_host_raw)

        body = translate_one(ComposeTranslator(config), config, "web").body

        assert body["restart"] == "always"
        assert body["labels"] == {"traefik.enable": "false"}

    def test_cluster_override_ignored(self, single_host_raw, make_config):
        single_host_raw["services"]["web"]["swarm"] = {"replicas": 3}
        config = make_config(single_host_raw)

        body = translate_one(ComposeTranslator(config), config, "web").body

        assert "deploy" not in body

    def test_conflicting_override(self, single_host_raw, make_config):
        single_host_raw["services"]["web"]["compose"] = {"environment": "TZ=UTC"}
        config = make_config(single_host_raw)

        with pytest.raises(RenderError, match="replaces a mapping"):
            translate_one(ComposeTranslator(config), config, "web")

    def test_replicas_rejected(self, single_host_raw, make_config):
        single_host_raw["services"]["web"]["compose"] = {"replicas": 2}
        config = make_config(single_host_raw)

        with pytest.raises(RenderError, match="replicas"):
            translate_one(ComposeTranslator(config), config, "web")

    def test_health_check(self, single_host_raw, make_config):
        single_host_raw["services"]["web"]["compose"] = {"health_check": "/healthz"}
        config = make_config(single_host_raw)

        body = translate_one(ComposeTranslator(config), config, "web").body

        assert body["healthcheck"]["test"] == ["CMD", "curl", "-f", "http://localhost:8080/healthz"]
        assert "health_check" not in body


class TestBuildDocument:
    """Complete docker-compose.yaml documents."""

    def test_document_layout(self, translator, config):
        descriptors = []
        for key in ("web", "monitor"):
            descriptors.extend(translator.translate(key, config.services[key], ["driver"]))
        fragments = ProxyRenderer("lab.example").render_unit(
            {key: config.services[key] for key in ("web", "monitor")}
        )

        document = translator.build_document("driver", descriptors, fragments)

        assert document["name"] == "homelab"
        assert list(document["services"]) == [PROXY_SERVICE, "monitor", "web"]
        assert document["networks"] == {"homelab": {"driver": "bridge"}}
        proxy = document["services"][PROXY_SERVICE]
        assert proxy["ports"] == ["80:80", "443:443"]
        assert proxy["depends_on"] == ["monitor", "web"]

    def test_no_proxy_without_fragments(self, translator, config):
        descriptors = translator.translate("db", config.services["db"], ["node-01"])

        document = translator.build_document("node-01", descriptors, [])

        assert list(document["services"]) == ["db"]
        assert document["volumes"] == {"db_data": {"driver": "local"}}
        assert document["secrets"] == {"db_password": {"file": "./secrets/db_password.txt"}}

    def test_port_conflict(self, single_host_raw, make_config):
        single_host_raw["services"]["monitor"]["port"] = 8080
        config = make_config(single_host_raw)
        translator = ComposeTranslator(config)
        descriptors = []
        for key in ("web", "monitor"):
            descriptors.extend(translator.translate(key, config.services[key], ["driver"]))

        with pytest.raises(RenderError, match="port 8080"):
            translator.build_document("driver", descriptors, [])

    def test_dump_is_plain_yaml(self, translator, config):
        descriptors = translator.translate("monitor", config.services["monitor"], ["driver"])
        text = translator.dump(translator.build_document("driver", descriptors, []))

        assert text.startswith("# Generated by homestack (single_host)")
        assert "&id" not in text and "*id" not in text
        assert yaml.safe_load(text)["services"]["monitor"]["image"] == "prom/node-exporter:v1.7.0"

    def test_get_translator(self, config):
        assert isinstance(get_translator(config), ComposeTranslator)
