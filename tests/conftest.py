"""Shared test fixtures for homestack tests."""
import copy

import pytest

from homestack.config.validator import ConfigValidator
from homestack.core.config import HomestackSettings

HOMELAB = {
    "version": "1.0",
    "backend": "single_host",
    "environment": {
        "BASE_DOMAIN": "lab.example",
        "TZ": "Europe/Stockholm",
    },
    "machines": {
        "driver": {"host": "192.168.1.10", "user": "admin", "driver": True},
        "node-01": {"host": "192.168.1.11"},
        "node-02": {"host": "192.168.1.12"},
    },
    "secrets": {
        "db_password": {"file": "./secrets/db_password.txt"},
    },
    "services": {
        "web": {
            "image": "nginx:1.25",
            "port": 8080,
            "environment": {"TZ": "${TZ}"},
        },
        "db": {
            "image": "postgres:16",
            "port": 5432,
            "storage": "persistent",
            "deploy": "specific:node-01",
            "secrets": ["db_password"],
        },
        "monitor": {
            "image": "prom/node-exporter:v1.7.0",
            "port": 9100,
            "deploy": "all",
        },
        "legacy": {
            "image": "old/app:1",
            "enabled": False,
            "deploy": "node-02",
        },
    },
}


@pytest.fixture
def single_host_raw():
    """Three-machine single_host configuration."""
    return copy.deepcopy(HOMELAB)


@pytest.fixture
def cluster_raw():
    """The same homelab, deployed as one cluster stack."""
    raw = copy.deepcopy(HOMELAB)
    raw["backend"] = "cluster"
    return raw


@pytest.fixture
def make_config():
    """Validate a raw document, failing the test on any issue."""
    def _make(raw):
        config, issues = ConfigValidator().validate(raw)
        assert issues == [], [str(issue) for issue in issues]
        return config
    return _make


@pytest.fixture
def settings():
    """Generation settings independent of the environment."""
    return HomestackSettings(workers=2)
