"""
Lighthouse configuration.

Settings come from a YAML file (``--config``) or from environment
variables. Command-line flags override either source.
"""

from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

PROBES = ("external", "nmap", "arp")

# Interface name prefixes that never carry a scannable LAN
DEFAULT_SKIP_PREFIXES = [
    "awdl",    # Apple Wireless Direct Link
    "llw",     # Low Latency WLAN
    "utun",    # VPN tunnels (macOS)
    "tun",     # VPN tunnels
    "tap",
    "wg",      # WireGuard
    "bridge",
    "br-",     # Docker user-defined bridges
    "docker",
    "veth",    # Container virtual ethernet
    "virbr",   # libvirt bridge
    "vmnet",
]


@dataclass
class LighthouseConfig:
    """Lighthouse configuration."""

    # Device store
    db_path: Path = field(default_factory=lambda: Path("./data/lighthouse.db"))

    # Devices not seen for this long are swept offline
    stale_after_minutes: int = 10

    # Probing
    probe: str = "nmap"  # external, nmap, arp
    probe_command: list[str] = field(default_factory=list)
    probe_timeout_seconds: Optional[float] = None
    nmap_arguments: str = "-sn -T4"

    # Network enumeration
    preferred_interfaces: list[str] = field(default_factory=lambda: ["en0"])
    skip_interface_prefixes: list[str] = field(
        default_factory=lambda: list(DEFAULT_SKIP_PREFIXES)
    )

    # API server
    api_host: str = "127.0.0.1"
    api_port: int = 8080

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "LighthouseConfig":
        """Load configuration from environment variables."""
        config = cls()

        if db_path := os.getenv("LIGHTHOUSE_DB_PATH"):
            config.db_path = Path(db_path)

        config.stale_after_minutes = int(os.getenv("LIGHTHOUSE_STALE_MINUTES", "10"))

        config.probe = os.getenv("LIGHTHOUSE_PROBE", config.probe).lower()
        if command := os.getenv("LIGHTHOUSE_PROBE_COMMAND"):
            config.probe_command = shlex.split(command)
        if timeout := os.getenv("LIGHTHOUSE_PROBE_TIMEOUT"):
            config.probe_timeout_seconds = float(timeout)

        config.api_host = os.getenv("API_HOST", "127.0.0.1")
        config.api_port = int(os.getenv("API_PORT", "8080"))

        config.log_level = os.getenv("LOG_LEVEL", "INFO")

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "LighthouseConfig":
        """Load configuration from YAML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        config = cls()

        if "paths" in data:
            p = data["paths"]
            if "db" in p:
                config.db_path = Path(p["db"])

        if "presence" in data:
            config.stale_after_minutes = data["presence"].get("stale_after_minutes", 10)

        if "probe" in data:
            pr = data["probe"]
            config.probe = str(pr.get("type", config.probe)).lower()
            command = pr.get("command", [])
            config.probe_command = shlex.split(command) if isinstance(command, str) else list(command)
            config.probe_timeout_seconds = pr.get("timeout_seconds")
            config.nmap_arguments = pr.get("nmap_arguments", config.nmap_arguments)

        if "interfaces" in data:
            i = data["interfaces"]
            config.preferred_interfaces = i.get("preferred", config.preferred_interfaces)
            config.skip_interface_prefixes = i.get("skip_prefixes", config.skip_interface_prefixes)

        if "api" in data:
            a = data["api"]
            config.api_host = a.get("host", "127.0.0.1")
            config.api_port = a.get("port", 8080)

        config.log_level = data.get("log_level", "INFO")

        return config

    def validate(self) -> list[str]:
        """Validate configuration, returning list of errors."""
        errors = []

        if self.stale_after_minutes < 0:
            errors.append(f"Invalid staleness threshold: {self.stale_after_minutes}")

        if self.probe not in PROBES:
            errors.append(f"Unknown probe type: {self.probe}")

        if self.probe == "external" and not self.probe_command:
            errors.append("External probe selected but no probe command configured")

        if self.probe_timeout_seconds is not None and self.probe_timeout_seconds <= 0:
            errors.append(f"Invalid probe timeout: {self.probe_timeout_seconds}")

        if not 0 < self.api_port < 65536:
            errors.append(f"Invalid API port: {self.api_port}")

        return errors


# Example lighthouse.yaml:
"""
paths:
  db: "./data/lighthouse.db"

presence:
  stale_after_minutes: 10

probe:
  type: "external"
  command: ["ruby", "scripts/scanner.rb"]
  timeout_seconds: 300

interfaces:
  preferred: ["en0", "wlan0"]

api:
  host: "127.0.0.1"
  port: 8080

log_level: "INFO"
"""
