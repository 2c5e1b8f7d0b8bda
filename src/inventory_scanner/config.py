"""
Inventory scanner configuration.

Loaded once before a run from a YAML (or JSON) file or from environment
variables, then treated as read-only by the scanner and fingerprint engine.
"""

from __future__ import annotations

import ipaddress
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from ._types import ScanProfile
from .exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = "default"
DEFAULT_RUN_TIMEOUT_SECONDS = 300  # 5 minutes per sweep

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")


def parse_duration(value: str) -> float:
    """
    Parse a duration string ("90s", "15m", "1h30m", "500ms") into seconds.

    Bare numbers are taken as seconds. Raises ValueError on bad input.
    """
    text = str(value).strip().lower()
    if not text:
        raise ValueError("empty duration")
    try:
        return float(text)
    except ValueError:
        pass

    pos = 0
    total = 0.0
    units = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * units[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return total


@dataclass
class ScanRange:
    """A CIDR range and the profile it is scanned with."""
    cidr: str
    profile: str = DEFAULT_PROFILE
    frequency: str = ""


@dataclass
class Site:
    """A scanning location: its ranges and excluded addresses."""
    name: str
    ranges: list[ScanRange] = field(default_factory=list)
    blacklist: list[str] = field(default_factory=list)

    def blacklisted_networks(self) -> list:
        """Blacklist entries as networks (single addresses become /32 or /128)."""
        networks = []
        for entry in self.blacklist:
            try:
                networks.append(ipaddress.ip_network(entry.strip(), strict=False))
            except ValueError:
                logger.warning(f"Ignoring invalid blacklist entry for site {self.name}: {entry}")
        return networks


@dataclass
class Credential:
    """Credentials for a probing module (snmp, ssh, ...)."""
    name: str = ""
    type: str = ""
    username: str = ""
    password: str = ""
    community: str = ""


@dataclass
class SchedulerConfig:
    """Periodic sweep settings."""
    enabled: bool = False
    tick: str = "1h"


@dataclass
class GLPIOAuthConfig:
    """OAuth2 client credentials for the GLPI high-level API."""
    client_id: str = ""
    client_secret: str = ""
    username: str = ""
    password: str = ""
    scope: str = "api"


@dataclass
class GLPIConfig:
    """Inventory system (GLPI) connection settings."""
    base_url: str = ""
    app_token: str = ""
    user_token: str = ""
    mode: str = ""
    oauth: Optional[GLPIOAuthConfig] = None
    max_retries: int = 3
    timeout_seconds: int = 30

    @property
    def enabled(self) -> bool:
        return bool(self.base_url.strip())


@dataclass
class LoggingConfig:
    """Log output settings."""
    level: str = "INFO"
    path: str = ""
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass
class FingerprintConfig:
    """
    Fingerprint engine settings.

    http_overrides_snmp keeps the observed behaviour of a successful HTTP
    response reclassifying the device as a Peripheral even when SNMP gave
    a more specific type. Set it to False to let HTTP fill only an
    Unknown type.
    """
    enable_snmp: bool = True
    snmp_community: str = "public"
    snmp_timeout: float = 2.0
    snmp_retries: int = 1
    http_timeout: float = 2.0
    http_overrides_snmp: bool = True


@dataclass
class ScannerConfig:
    """Inventory scanner configuration."""

    sites: list[Site] = field(default_factory=list)
    profiles: dict[str, ScanProfile] = field(default_factory=dict)
    credentials: list[Credential] = field(default_factory=list)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    glpi: GLPIConfig = field(default_factory=GLPIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    fingerprint: FingerprintConfig = field(default_factory=FingerprintConfig)

    # Overall deadline for one sweep
    run_timeout_seconds: float = DEFAULT_RUN_TIMEOUT_SECONDS

    def snmp_community(self) -> str:
        """Community of the first snmp credential, or "public"."""
        for cred in self.credentials:
            if cred.type.lower() == "snmp" and cred.community:
                return cred.community
        return "public"

    def get_profile(self, name: str) -> Optional[ScanProfile]:
        """Look up a profile; the default profile always exists."""
        if name in self.profiles:
            return self.profiles[name]
        if name == DEFAULT_PROFILE:
            return ScanProfile()
        return None

    def fingerprint_config(self) -> FingerprintConfig:
        """Fingerprint settings with the SNMP community from credentials."""
        fp = self.fingerprint
        community = fp.snmp_community
        if community == "public":
            community = self.snmp_community()
        return FingerprintConfig(
            enable_snmp=fp.enable_snmp,
            snmp_community=community,
            snmp_timeout=fp.snmp_timeout,
            snmp_retries=fp.snmp_retries,
            http_timeout=fp.http_timeout,
            http_overrides_snmp=fp.http_overrides_snmp,
        )

    @classmethod
    def from_env(cls) -> "ScannerConfig":
        """
        Load configuration from environment variables.

        NETWORK_RANGES is a comma-separated CIDR list scanned as one site
        with the default profile.
        """
        config = cls()

        ranges = os.getenv("NETWORK_RANGES", "")
        if ranges.strip():
            config.sites = [Site(
                name=os.getenv("SITE_NAME", "default"),
                ranges=[ScanRange(cidr=r.strip()) for r in ranges.split(",") if r.strip()],
            )]

        profile = ScanProfile()
        if ports := os.getenv("SCAN_PORTS"):
            profile.ports = [int(p) for p in ports.split(",") if p.strip()]
        profile.max_workers = int(os.getenv("SCAN_MAX_WORKERS", "0"))
        profile.timeout_ms = int(os.getenv("SCAN_TIMEOUT_MS", "0"))
        config.profiles = {DEFAULT_PROFILE: profile}

        if community := os.getenv("SNMP_COMMUNITY"):
            config.credentials = [Credential(name="env", type="snmp", community=community)]
        config.fingerprint.enable_snmp = os.getenv("ENABLE_SNMP", "true").lower() == "true"
        config.fingerprint.http_overrides_snmp = (
            os.getenv("HTTP_OVERRIDES_SNMP", "true").lower() == "true"
        )

        config.glpi.base_url = os.getenv("GLPI_BASE_URL", "")
        config.glpi.app_token = os.getenv("GLPI_APP_TOKEN", "")
        config.glpi.user_token = os.getenv("GLPI_USER_TOKEN", "")

        config.scheduler.enabled = os.getenv("SCHEDULER_ENABLED", "false").lower() == "true"
        config.scheduler.tick = os.getenv("SCHEDULER_TICK", config.scheduler.tick)

        config.run_timeout_seconds = float(
            os.getenv("RUN_TIMEOUT_SECONDS", str(DEFAULT_RUN_TIMEOUT_SECONDS))
        )

        config.logging.level = os.getenv("LOG_LEVEL", "INFO")
        config.logging.path = os.getenv("LOG_PATH", "")

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "ScannerConfig":
        """
        Load configuration from a YAML file (JSON documents parse too).

        Raises ConfigError if the file cannot be read or parsed.
        """
        path = Path(path)
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"read config {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"parse config {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"parse config {path}: top level must be a mapping")
        try:
            return cls.from_dict(data)
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigError(f"parse config {path}: {e}") from e

    @classmethod
    def from_dict(cls, data: dict) -> "ScannerConfig":
        """Build a configuration from parsed YAML/JSON data."""
        config = cls()

        for s in data.get("sites") or []:
            config.sites.append(Site(
                name=s.get("name", ""),
                ranges=[
                    ScanRange(
                        cidr=r.get("cidr", ""),
                        profile=r.get("profile") or DEFAULT_PROFILE,
                        frequency=r.get("frequency", ""),
                    )
                    for r in s.get("ranges") or []
                ],
                blacklist=list(s.get("blacklist") or []),
            ))

        for name, p in (data.get("profiles") or {}).items():
            p = p or {}
            config.profiles[name] = ScanProfile(
                ports=[int(port) for port in p.get("ports") or []],
                max_workers=int(p.get("max_workers") or 0),
                timeout_ms=int(p.get("timeout_ms") or 0),
                protocols=list(p.get("protocols") or []),
                description=p.get("description", ""),
            )

        for c in data.get("credentials") or []:
            config.credentials.append(Credential(
                name=c.get("name", ""),
                type=c.get("type", ""),
                username=c.get("username", ""),
                password=c.get("password", ""),
                community=c.get("community", ""),
            ))

        if "scheduler" in data:
            s = data["scheduler"] or {}
            config.scheduler.enabled = bool(s.get("enabled", False))
            config.scheduler.tick = str(s.get("tick", config.scheduler.tick))

        if "glpi" in data:
            g = data["glpi"] or {}
            config.glpi.base_url = g.get("base_url", "")
            config.glpi.app_token = g.get("app_token", "")
            config.glpi.user_token = g.get("user_token", "")
            config.glpi.mode = g.get("mode", "")
            if g.get("oauth"):
                o = g["oauth"]
                config.glpi.oauth = GLPIOAuthConfig(
                    client_id=o.get("client_id", ""),
                    client_secret=o.get("client_secret", ""),
                    username=o.get("username", ""),
                    password=o.get("password", ""),
                    scope=o.get("scope") or "api",
                )

        if "logging" in data:
            lg = data["logging"] or {}
            config.logging.level = lg.get("level", "INFO")
            config.logging.path = lg.get("path", "")
            if lg.get("format"):
                config.logging.format = lg["format"]

        if "fingerprint" in data:
            f = data["fingerprint"] or {}
            fp = config.fingerprint
            fp.enable_snmp = bool(f.get("enable_snmp", fp.enable_snmp))
            fp.snmp_community = f.get("snmp_community", fp.snmp_community)
            fp.snmp_timeout = float(f.get("snmp_timeout", fp.snmp_timeout))
            fp.snmp_retries = int(f.get("snmp_retries", fp.snmp_retries))
            fp.http_timeout = float(f.get("http_timeout", fp.http_timeout))
            fp.http_overrides_snmp = bool(f.get("http_overrides_snmp", fp.http_overrides_snmp))

        if "run_timeout_seconds" in data:
            config.run_timeout_seconds = float(data["run_timeout_seconds"])

        return config

    def validate(self) -> list[str]:
        """Validate configuration, returning list of errors."""
        errors = []

        if not any(site.ranges for site in self.sites):
            errors.append("No network ranges configured")

        for site in self.sites:
            for r in site.ranges:
                if not r.cidr:
                    errors.append(f"Site {site.name}: range without cidr")
                if self.get_profile(r.profile) is None:
                    errors.append(f"Site {site.name}: profile {r.profile} missing for {r.cidr}")

        if self.scheduler.enabled:
            try:
                if parse_duration(self.scheduler.tick) <= 0:
                    errors.append(f"Invalid scheduler tick: {self.scheduler.tick}")
            except ValueError:
                errors.append(f"Invalid scheduler tick: {self.scheduler.tick}")

        if self.run_timeout_seconds <= 0:
            errors.append(f"Invalid run timeout: {self.run_timeout_seconds}")

        return errors


# Example inventory_scanner.yaml:
"""
sites:
  - name: head-office
    ranges:
      - cidr: "192.168.1.0/24"
        profile: office
    blacklist:
      - "192.168.1.1"

profiles:
  office:
    description: Office LAN
    ports: [22, 80, 443, 135, 139, 445, 3389, 161, 9100, 515]
    max_workers: 64
    timeout_ms: 1000

credentials:
  - name: snmp-ro
    type: snmp
    community: "public"

scheduler:
  enabled: false
  tick: "1h"

glpi:
  base_url: "https://glpi.example.com/apirest.php"
  app_token: "..."
  user_token: "..."

fingerprint:
  enable_snmp: true
  http_overrides_snmp: true

logging:
  level: INFO
  path: ""

run_timeout_seconds: 300
"""
