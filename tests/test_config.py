"""Tests for configuration loading."""

import ipaddress
import json

import pytest

from inventory_scanner.config import (
    DEFAULT_RUN_TIMEOUT_SECONDS,
    ScannerConfig,
    Site,
    parse_duration,
)
from inventory_scanner.exceptions import ConfigError


CONFIG_YAML = """
sites:
  - name: head-office
    ranges:
      - cidr: "192.168.1.0/24"
        profile: office
        frequency: "1h"
      - cidr: "10.0.0.0/30"
    blacklist:
      - "192.168.1.1"
      - "192.168.1.128/25"

profiles:
  office:
    description: Office LAN
    ports: [22, 80, 9100]
    max_workers: 32
    timeout_ms: 500
    protocols: [snmp, http]

credentials:
  - name: ro
    type: snmp
    community: "s3cret"

scheduler:
  enabled: true
  tick: "15m"

glpi:
  base_url: "https://glpi.example.com/api.php/v2"
  app_token: app
  user_token: user
  oauth:
    client_id: cid
    client_secret: csecret

fingerprint:
  http_overrides_snmp: false
  snmp_timeout: 1.5

logging:
  level: DEBUG
  path: /tmp/scanner.log

run_timeout_seconds: 120
"""


class TestParseDuration:
    """Tests for duration strings."""

    @pytest.mark.parametrize("text,seconds", [
        ("30s", 30),
        ("15m", 900),
        ("1h", 3600),
        ("1h30m", 5400),
        ("500ms", 0.5),
        ("45", 45),
    ])
    def test_valid(self, text, seconds):
        assert parse_duration(text) == pytest.approx(seconds)

    @pytest.mark.parametrize("text", ["", "abc", "10x", "1h foo"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_duration(text)


class TestFromYaml:
    """Tests for YAML loading."""

    def test_full_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(CONFIG_YAML)

        config = ScannerConfig.from_yaml(path)

        site = config.sites[0]
        assert site.name == "head-office"
        assert [r.cidr for r in site.ranges] == ["192.168.1.0/24", "10.0.0.0/30"]
        assert site.ranges[0].profile == "office"
        assert site.ranges[0].frequency == "1h"
        assert site.ranges[1].profile == "default"

        office = config.profiles["office"]
        assert office.ports == [22, 80, 9100]
        assert office.max_workers == 32
        assert office.timeout_ms == 500
        assert office.protocol_enabled("SNMP")
        assert not office.protocol_enabled("tcp")

        assert config.snmp_community() == "s3cret"
        assert config.scheduler.enabled is True
        assert config.scheduler.tick == "15m"
        assert config.glpi.enabled
        assert config.glpi.oauth.client_id == "cid"
        assert config.glpi.oauth.scope == "api"
        assert config.fingerprint.http_overrides_snmp is False
        assert config.fingerprint.snmp_timeout == 1.5
        assert config.logging.level == "DEBUG"
        assert config.run_timeout_seconds == 120
        assert config.validate() == []

    def test_json_document(self, tmp_path):
        """JSON files load through the same parser."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "sites": [{"name": "lab", "ranges": [{"cidr": "10.1.0.0/24"}]}],
        }))

        config = ScannerConfig.from_yaml(path)

        assert config.sites[0].ranges[0].cidr == "10.1.0.0/24"
        assert config.run_timeout_seconds == DEFAULT_RUN_TIMEOUT_SECONDS

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            ScannerConfig.from_yaml(tmp_path / "nope.yaml")

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("sites: [unclosed\n")

        with pytest.raises(ConfigError):
            ScannerConfig.from_yaml(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigError):
            ScannerConfig.from_yaml(path)


class TestFromEnv:
    """Tests for environment loading."""

    def test_ranges_and_profile(self, monkeypatch):
        monkeypatch.setenv("NETWORK_RANGES", "10.0.0.0/24, 10.0.1.0/24")
        monkeypatch.setenv("SCAN_PORTS", "22,443")
        monkeypatch.setenv("SCAN_MAX_WORKERS", "8")
        monkeypatch.setenv("SNMP_COMMUNITY", "private")
        monkeypatch.setenv("SCHEDULER_ENABLED", "true")

        config = ScannerConfig.from_env()

        assert [r.cidr for r in config.sites[0].ranges] == ["10.0.0.0/24", "10.0.1.0/24"]
        assert config.profiles["default"].ports == [22, 443]
        assert config.profiles["default"].max_workers == 8
        assert config.snmp_community() == "private"
        assert config.scheduler.enabled is True

    def test_empty_env(self, monkeypatch):
        monkeypatch.delenv("NETWORK_RANGES", raising=False)

        config = ScannerConfig.from_env()

        assert config.sites == []
        assert "No network ranges configured" in config.validate()


class TestValidate:
    """Tests for config validation."""

    def test_missing_profile(self):
        config = ScannerConfig.from_dict({
            "sites": [{"name": "s", "ranges": [{"cidr": "10.0.0.0/24", "profile": "ghost"}]}],
        })

        errors = config.validate()

        assert any("profile ghost missing" in e for e in errors)

    def test_bad_tick(self):
        config = ScannerConfig.from_dict({
            "sites": [{"name": "s", "ranges": [{"cidr": "10.0.0.0/24"}]}],
            "scheduler": {"enabled": True, "tick": "soon"},
        })

        assert any("scheduler tick" in e for e in config.validate())

    def test_default_profile_always_available(self):
        config = ScannerConfig()
        assert config.get_profile("default") is not None
        assert config.get_profile("other") is None

    def test_snmp_community_default(self):
        assert ScannerConfig().snmp_community() == "public"

    def test_fingerprint_config_takes_credential_community(self):
        config = ScannerConfig.from_dict({
            "credentials": [{"name": "c", "type": "SNMP", "community": "inside"}],
        })
        assert config.fingerprint_config().snmp_community == "inside"


class TestBlacklist:
    """Tests for site blacklists."""

    def test_networks(self):
        site = Site(name="s", blacklist=["192.168.1.1", "10.0.0.0/8", "bogus"])

        networks = site.blacklisted_networks()

        assert ipaddress.ip_network("192.168.1.1/32") in networks
        assert ipaddress.ip_network("10.0.0.0/8") in networks
        assert len(networks) == 2
