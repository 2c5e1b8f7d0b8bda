"""Command line entry point for the inventory scanner."""

from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from ._types import ScanSummary
from .config import ScannerConfig
from .exceptions import ConfigError
from .logging_setup import setup_logging
from .scanner_service import InventoryScannerService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Network inventory scanner")
    parser.add_argument("--config", type=str, help="Path to config file (YAML or JSON)")
    parser.add_argument(
        "--command",
        choices=("scan", "list", "serve"),
        default="scan",
        help="scan: run one sweep, list: show configured ranges, serve: run the scheduler",
    )
    parser.add_argument("--range", dest="range_filter", type=str, help="Only scan this CIDR")
    parser.add_argument("--log-level", type=str, help="Log level (overrides config)")
    parser.add_argument("--output", type=str, help="Write discovered assets as JSON to this file")
    return parser


def list_ranges(config: ScannerConfig) -> None:
    for site in config.sites:
        print(f"Site: {site.name}")
        for r in site.ranges:
            line = f"  {r.cidr} (profile {r.profile}"
            if r.frequency:
                line += f", every {r.frequency}"
            print(line + ")")
        if site.blacklist:
            print(f"  blacklist: {', '.join(site.blacklist)}")


def write_assets(summary: ScanSummary, path: str) -> None:
    data = [asset.to_dict() for asset in summary.assets]
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
    logger.info(f"Wrote {len(data)} assets to {path}")


def print_summary(summary: ScanSummary) -> None:
    print(f"Scan {summary.scan_id}: {summary.status}")
    print(f"  ranges: {len(summary.ranges_scanned)} scanned, {len(summary.ranges_failed)} failed")
    print(f"  hosts:  {summary.hosts_probed} probed, {summary.hosts_alive} alive")
    for asset in summary.assets:
        print(
            f"  {asset.address}  {asset.type.value:<16} {asset.vendor or '-':<16} "
            f"{asset.model or '-'}  {asset.hostname}"
        )
    if summary.pushed or summary.push_failures:
        print(f"  pushed: {summary.pushed}, failed: {summary.push_failures}")


async def _run(service: InventoryScannerService, args: argparse.Namespace) -> Optional[ScanSummary]:
    if args.command == "serve":
        await service.start()
        return None
    try:
        return await service.run_scan(range_filter=args.range_filter, triggered_by="manual")
    finally:
        await service.close()


def prompt_glpi_password(config: ScannerConfig) -> None:
    """Ask for the GLPI OAuth password when only the username is configured."""
    oauth = config.glpi.oauth
    if not config.glpi.enabled or oauth is None:
        return
    if oauth.password or not oauth.username:
        return
    oauth.password = getpass.getpass(f"Enter GLPI password for {oauth.username}: ").strip()


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for inventory-scanner."""
    args = build_parser().parse_args(argv)

    # Load configuration
    try:
        if args.config:
            config = ScannerConfig.from_yaml(Path(args.config))
        else:
            config = ScannerConfig.from_env()
    except ConfigError as e:
        setup_logging(args.log_level or "INFO")
        logger.error(f"Config error: {e}")
        return 1

    if args.log_level:
        config.logging.level = args.log_level
    setup_logging(config.logging.level, config.logging.path, config.logging.format)

    if args.command == "list":
        list_ranges(config)
        return 0

    # Validate
    errors = config.validate()
    if errors:
        for error in errors:
            logger.error(f"Config error: {error}")
        return 1

    if args.command == "serve" and not config.scheduler.enabled:
        logger.error("Scheduler is disabled in config; nothing to serve")
        return 1

    prompt_glpi_password(config)

    # Create service
    service = InventoryScannerService(config)

    # Handle signals
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def signal_handler():
        logger.info("Received shutdown signal")
        loop.create_task(service.stop())

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, signal_handler)

    summary = None
    try:
        summary = loop.run_until_complete(_run(service, args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        loop.run_until_complete(service.close())
        loop.close()

    if summary is None:
        return 0
    print_summary(summary)
    if args.output:
        write_assets(summary, args.output)
    return 0 if summary.status == "completed" else 1


if __name__ == "__main__":
    sys.exit(main())
