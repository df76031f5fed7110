"""
CLI Module

Architectural Intent:
- Command-line interface for hoist
- Entry point for all user interactions
- Delegates to application use cases via composition root
- Supports --verbose/--debug flags for log level control
- Exit status mirrors the deployment outcome: 0 succeeded, 1 failed precheck,
  2 rolled back, 3 rollback failed
"""

import argparse
import asyncio
import logging
import sys
import traceback
from pathlib import Path
from typing import Optional, Sequence
from hoist.domain.errors import ConfigError, HoistError, RollbackError
from hoist.domain.value_objects.target_host import TargetHost
from hoist.infrastructure.config import DeploymentConfig, load_config
from hoist.infrastructure.logging import configure_logging

EXIT_FAILED = 1
EXIT_ROLLBACK_FAILED = 3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hoist",
        description="hoist: single-host deployments with backup and rollback",
    )
    parser.add_argument(
        "--config", "-c", default=None, help="Path to JSON config (default: hoist.json)"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable verbose output"
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug output with tracebacks"
    )
    parser.add_argument(
        "--json-logs", action="store_true", help="Emit structured JSON log lines"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    def add_target_options(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--target", "-t", help="Target host as user@host[:port]")
        sub.add_argument("--target-dir", "-d", help="Remote project directory")

    deploy_parser = subparsers.add_parser(
        "deploy", help="Package, upload, install and restart the project"
    )
    add_target_options(deploy_parser)
    deploy_parser.add_argument("--project-dir", "-p", help="Local project directory")
    deploy_parser.add_argument("--service", "-s", help="pm2 service name")
    deploy_parser.add_argument("--runtime-version", help="Expected Node.js version")
    deploy_parser.add_argument(
        "--allow-fresh-install", action="store_true",
        help="Deploy even when no installation exists yet",
    )

    preflight_parser = subparsers.add_parser(
        "preflight", help="Run every pre-deployment check without changing the host"
    )
    add_target_options(preflight_parser)

    rollback_parser = subparsers.add_parser(
        "rollback", help="Restore the target directory from a snapshot"
    )
    add_target_options(rollback_parser)
    rollback_parser.add_argument(
        "--snapshot", help="Snapshot path to restore (default: newest)"
    )

    snapshots_parser = subparsers.add_parser(
        "snapshots", help="List snapshots of the target directory"
    )
    add_target_options(snapshots_parser)

    concat_parser = subparsers.add_parser(
        "concat", help="Concatenate project sources into one file"
    )
    concat_parser.add_argument("source_dir", nargs="?", default=".", help="Project root")
    concat_parser.add_argument("--output", "-o", required=True, help="Output file")
    concat_parser.add_argument(
        "--format", "-f", dest="fmt", choices=(".js", ".ts", ".html"), default=None,
        help="Output format (default: output file extension)",
    )

    return parser


def apply_cli_overrides(config: DeploymentConfig, args: argparse.Namespace) -> DeploymentConfig:
    if getattr(args, "target", None):
        target = TargetHost.parse(
            args.target, default_user=config.target.username, default_port=config.target.port
        )
        config = config.with_overrides(
            "target", host=target.host, username=target.user, port=target.port
        )
    if getattr(args, "target_dir", None):
        config = config.with_overrides("deploy", target_dir=args.target_dir)
    if getattr(args, "project_dir", None):
        config = config.with_overrides("deploy", project_dir=args.project_dir)
    if getattr(args, "service", None):
        config = config.with_overrides("supervisor", service_name=args.service)
    if getattr(args, "runtime_version", None):
        config = config.with_overrides("runtime", version=args.runtime_version)
    if getattr(args, "allow_fresh_install", False):
        config = config.with_overrides("deploy", require_existing_install=False)
    return config


def _concat(args: argparse.Namespace) -> int:
    from hoist.infrastructure.reporting.source_concatenator import concatenate_sources

    fmt = args.fmt or Path(args.output).suffix
    try:
        count = concatenate_sources(Path(args.source_dir), Path(args.output), fmt)
    except (ValueError, OSError) as e:
        print(f"[-] Concatenation failed: {e}")
        return EXIT_FAILED
    print(f"[+] Concatenated {count} files into {args.output}")
    return 0


async def async_main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    verbose = args.verbose or args.debug

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "concat":
        configure_logging(
            level=logging.DEBUG if args.debug else logging.INFO if args.verbose else logging.WARNING,
            json_format=args.json_logs,
        )
        return _concat(args)

    try:
        config = apply_cli_overrides(load_config(args.config), args)
        level = logging.DEBUG if args.debug else logging.INFO if args.verbose else config.log_level
        configure_logging(level=level, json_format=args.json_logs)
    except (ConfigError, ValueError) as e:
        print(f"[-] Configuration error: {e}")
        return EXIT_FAILED

    from hoist.composition_root import create_container

    try:
        container = create_container(config)
    except ValueError as e:
        print(f"[-] Configuration error: {e}")
        return EXIT_FAILED

    if args.command == "deploy":
        print(f"[*] Deploying {config.deploy.project_dir} to "
              f"{config.target.host}:{config.deploy.target_dir}...")
        result = await container.deploy.execute(config)
        for warning in result.warnings:
            print(f"[!] {warning}")
        print(f"[{'+' if result.succeeded else '-'}] {result.summary()}")
        if verbose and result.error is not None:
            traceback.print_exception(result.error)
        return result.exit_code

    if args.command == "preflight":
        print(f"[*] Running preflight checks against {config.target.host}...")
        report = await container.inspect.preflight_only(config)
        if not report.passed:
            print(f"[-] Preflight failed [{report.error.kind.value}]: {report.error}")
            return EXIT_FAILED
        print(f"[+] Preflight passed. {len(report.snapshots)} snapshot(s) on the host.")
        return 0

    if args.command == "snapshots":
        try:
            snapshots = await container.inspect.list_snapshots(config)
        except HoistError as e:
            print(f"[-] Could not list snapshots: {e}")
            return EXIT_FAILED
        if not snapshots:
            print(f"[*] No snapshots of {config.deploy.target_dir}")
        for snapshot in snapshots:
            print(snapshot)
        return 0

    if args.command == "rollback":
        print(f"[*] Initiating rollback of {config.deploy.target_dir}...")
        try:
            snapshot = await container.rollback.execute(config, args.snapshot)
        except RollbackError as e:
            print(f"[-] Rollback Failed: {e}")
            if verbose:
                traceback.print_exc()
            return EXIT_ROLLBACK_FAILED
        except HoistError as e:
            print(f"[-] Rollback Failed: {e}")
            if verbose:
                traceback.print_exc()
            return EXIT_FAILED
        print(f"[+] Rollback Successful. Restored {snapshot}.")
        return 0

    parser.print_help()
    return 0


def main():
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
