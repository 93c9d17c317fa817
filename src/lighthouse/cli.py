"""
Command-line interface for lighthouse.

    lighthouse scan [network]   Scan a network (auto-detects when omitted)
    lighthouse list             List discovered devices
    lighthouse networks         List detected networks
    lighthouse stats            Show device counts
    lighthouse serve            Start the HTTP API
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from ._types import Observation
from .config import LighthouseConfig
from .device_store import DeviceStore
from .errors import NoNetworkFound, PersistenceError, ProbeFailed
from .presence import PresenceService

logger = logging.getLogger(__name__)


def _dash(value: Optional[str]) -> str:
    return value or "-"


def truncate(value: Optional[str], width: int) -> str:
    """Truncate for table output, '-' for empty values."""
    if not value:
        return "-"
    if len(value) > width:
        return value[:width - 3] + "..."
    return value


def format_observation(observation: Observation) -> str:
    line = f"{observation.ip_address:<15}"
    if observation.mac_address:
        line += f" | MAC: {observation.mac_address:<17}"
    if observation.hostname:
        line += f" | {observation.hostname}"
    if observation.vendor:
        line += f" [{observation.vendor}]"
    return line


def cmd_scan(service: PresenceService, args: argparse.Namespace) -> int:
    network = args.network
    if not network:
        try:
            primary = service.primary_network()
        except NoNetworkFound as e:
            print(f"Failed to detect network: {e}", file=sys.stderr)
            print("Please specify network manually: lighthouse scan 192.168.1.0/24")
            return 1
        network = primary.cidr
        print(f"Auto-detected network: {primary.cidr} (interface: {primary.interface}, your IP: {primary.ip})")

    print(f"Scanning network {network}...")
    print("   (This may take 30-60 seconds)")
    print()

    try:
        result = service.run_scan(
            network,
            triggered_by="cli",
            on_saved=lambda obs: print(format_observation(obs)),
        )
    except ProbeFailed as e:
        print(f"Scan failed: {e}", file=sys.stderr)
        if e.output:
            print(e.output.strip(), file=sys.stderr)
        return 1

    for ip in result.failed_ips:
        print(f"Failed to save {ip}", file=sys.stderr)

    print(f"\nSaved {result.devices_saved} devices to database")
    return 0


def cmd_list(service: PresenceService, args: argparse.Namespace) -> int:
    devices = service.get_devices()

    if not devices:
        print("No devices found. Run 'lighthouse scan' first.")
        return 0

    print(f"Found {len(devices)} device(s):\n")
    print(f"{'IP Address':<15}  {'MAC Address':<17}  {'Vendor':<20} {'Status':<8} Hostname")
    print("─" * 88)
    for d in devices:
        print(
            f"{d.ip_address:<15}  {_dash(d.mac_address):<17}  {truncate(d.vendor, 20):<20} "
            f"{'online' if d.online else 'offline':<8} {_dash(d.hostname)}"
        )
    return 0


def cmd_networks(service: PresenceService, args: argparse.Namespace) -> int:
    networks = service.get_networks()

    if not networks:
        print("No networks detected")
        return 0

    print(f"Detected {len(networks)} network(s):\n")
    print(f"{'Interface':<12} {'IP Address':<15}  Network CIDR")
    print("─" * 54)
    for net in networks:
        print(f"{net.interface:<12} {net.ip:<15}  {net.cidr}")

    print("\nTo scan a specific network:")
    print("  sudo lighthouse scan <CIDR>")
    return 0


def cmd_stats(service: PresenceService, args: argparse.Namespace) -> int:
    stats = service.get_stats()
    print(f"Total: {stats.total} | Online: {stats.online} | Offline: {stats.offline}")
    return 0


def cmd_serve(service: PresenceService, args: argparse.Namespace) -> int:
    from .api import run_server

    print("Starting Lighthouse web server...")
    print(f"API: http://{args.host}:{args.port}/api/devices")
    print()
    run_server(service, host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lighthouse",
        description="Scan your local network and track devices",
    )
    parser.add_argument("--config", type=str, help="Path to YAML config file")
    parser.add_argument("--db", type=str, help="Path to device database")
    parser.add_argument("--log-level", type=str, help="Log level")

    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Scan network for devices")
    scan.add_argument("network", nargs="?", help="CIDR to scan, e.g. 192.168.1.0/24")
    scan.set_defaults(func=cmd_scan)

    sub.add_parser("list", help="List discovered devices").set_defaults(func=cmd_list)
    sub.add_parser("networks", help="List detected networks").set_defaults(func=cmd_networks)
    sub.add_parser("stats", help="Show device counts").set_defaults(func=cmd_stats)

    serve = sub.add_parser("serve", help="Start HTTP API")
    serve.add_argument("--host", type=str, help="API host")
    serve.add_argument("--port", type=int, help="API port")
    serve.set_defaults(func=cmd_serve)

    return parser


def load_config(args: argparse.Namespace) -> LighthouseConfig:
    if args.config:
        config = LighthouseConfig.from_yaml(Path(args.config))
    else:
        config = LighthouseConfig.from_env()

    # Override with CLI args
    if args.db:
        config.db_path = Path(args.db)
    if args.log_level:
        config.log_level = args.log_level
    if args.command == "serve":
        args.host = args.host or config.api_host
        args.port = args.port or config.api_port

    return config


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the lighthouse command."""
    args = build_parser().parse_args(argv)
    config = load_config(args)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Config error: {error}")
        return 1

    store = DeviceStore(config.db_path)
    try:
        store.open()
    except PersistenceError as e:
        print(f"Failed to open database: {e}", file=sys.stderr)
        return 1

    try:
        service = PresenceService.from_config(config, store)
        return args.func(service, args)
    except PersistenceError as e:
        print(f"Database error: {e}", file=sys.stderr)
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
