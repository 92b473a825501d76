"""
Command line interface of the Fedora extraction tool.

Two subcommands mirror the two steps of a migration::

    fedora-migrator migrate --input /usr/local/fedora --output /data/repository
    fedora-migrator scripts --input /data/repository --output /data/csv --scripts scripts/

The exit status is zero only when the step completed entirely.
"""

from __future__ import annotations

import argparse
import os
from typing import List, Optional, Sequence

from fedora_migrator.extraction_tool import FedoraExtractionTool
from fedora_migrator.utils.errors import ConfigurationError, ExtractionError

CONFIG_FILE = os.path.join("config", "extraction_config.json")


def _pids(values: Optional[Sequence[str]]) -> List[str]:
    pids: List[str] = []
    for value in values or ():
        pids.extend(pid.strip() for pid in value.split(",") if pid.strip())
    return pids


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fedora-migrator",
        description="Migrate a Fedora 3 repository and extract CSV tables from it with scripts.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help=f"JSON configuration file (default: {CONFIG_FILE}, when present).",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    migrate = subcommands.add_parser(
        "migrate", help="Copy or move Fedora content into the directory-per-object layout."
    )
    migrate.add_argument("--input", required=True, help="Fedora home holding data/objectStore.")
    migrate.add_argument("--output", required=True, help="Destination of the migrated layout.")
    migrate.add_argument("--move", action="store_true", help="Move files instead of copying them.")
    migrate.add_argument(
        "--checksum",
        action="store_true",
        help="Compare checksums rather than sizes and modified times to detect changes.",
    )

    scripts = subcommands.add_parser("scripts", help="Generate one CSV file per script.")
    scripts.add_argument("--input", required=True, help="Root of the migrated layout.")
    scripts.add_argument("--output", required=True, help="Directory receiving the CSV files.")
    scripts.add_argument("--scripts", required=True, nargs="+", help="Directories holding the scripts.")
    scripts.add_argument("--modules", nargs="*", default=[], help="Directories holding helper modules.")
    scripts.add_argument(
        "--pids", nargs="*", default=[], help="Only process these objects (space or comma separated)."
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main function to run the Fedora extraction tool.
    """
    args = build_parser().parse_args(argv)
    try:
        if args.config and not os.path.exists(args.config):
            raise ConfigurationError(f"Configuration file {args.config} does not exist")
        tool = FedoraExtractionTool(config_file=args.config or CONFIG_FILE)
    except ExtractionError as e:
        print(f"[ERROR] {e}")
        return 1

    tool.log_message(f"Starting '{args.command}'.")
    try:
        if args.command == "migrate":
            tool.migrate_layout(args.input, args.output, copy=not args.move, checksum=args.checksum)
        else:
            tool.run_scripts(args.input, args.output, args.scripts, args.modules, _pids(args.pids))
    except ExtractionError:
        # Already logged and reported by the tool.
        return 1
    tool.log_message(f"Finished '{args.command}'.")
    return 0
