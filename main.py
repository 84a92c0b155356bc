#!/usr/bin/env python3
"""
cargo-cult - package provisioner and SSH session entrypoint

Usage:
    cargo-cult install-all-packages [--concurrency=<N>] [--dry-run] \
        [--timeout=<SECONDS>] [--install-log=<PATH>]
    cargo-cult ssh-entrypoint [--host=<HOST>] [--port=<PORT>] \
        [--host-key=<PATH>] [--allow=<USER> ...] [--status-port=<PORT>]
    cargo-cult readme [<PACKAGE>]
    readme [<PACKAGE>]              (when installed under the name "readme")

Environment:
    AIRTABLE_KEY            catalog credential, required by install-all-packages
    AIRTABLE_BASE_ID        catalog base (default appLSCQFAClFemq86)
    AIRTABLE_TABLE          catalog table (default GA)
    AIRTABLE_VIEW           catalog view (default Approved)
    CARGO_CULT_INSTALL_LOG  install log path
    CARGO_CULT_ONBOARDING   onboarding markdown document
    CARGO_CULT_LOG_LEVEL    logging level (default INFO)

Exit codes for install-all-packages:
    0 every package installed or already satisfied
    1 at least one package failed
    2 credential rejected or configuration error
    3 catalog service unavailable after retries
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

import uvicorn

from application.config import ProvisionerConfig
from application.handle_session import SessionHandler
from application.install_packages import PackageInstaller
from application.report_slot import ReportSlot
from domain.errors import AuthError, ConfigurationError, RenderError, TransientError
from domain.install_report import InstallResult
from domain.installer import BackendRegistry
from infrastructure.access_policy import AccessPolicy
from infrastructure.catalog_client import AirtableCatalogClient
from infrastructure.install_log import JsonLinesInstallLog
from infrastructure.renderer import GlowRenderer, find_package_readme
from infrastructure.ssh_gateway import SSHGateway
from interfaces.api import initialize_app

logger = logging.getLogger("cargo_cult")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_TRANSIENT = 3

ALIAS_NAMES = {"readme"}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='cargo-cult',
        description='Provision the Cargo Cult gallery machine and serve SSH sessions',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    subparsers = parser.add_subparsers(dest='command')

    install = subparsers.add_parser('install-all-packages', help='Install every package in the catalog')
    install.add_argument('--concurrency', type=int,
                         help='Maximum concurrent installs (default: number of CPUs)')
    install.add_argument('--dry-run', action='store_true',
                         help='Fetch the catalog and check what is installed, without installing')
    install.add_argument('--timeout', type=float,
                         help='Per-package install timeout in seconds (default: 1800)')
    install.add_argument('--install-log', type=Path,
                         help='Append-only install log (default: ~/.local/state/cargo-cult/install-log.jsonl)')

    ssh = subparsers.add_parser('ssh-entrypoint', help='Serve interactive SSH sessions')
    ssh.add_argument('--host', help='Host to bind to (default: 0.0.0.0)')
    ssh.add_argument('--port', type=int, help='Port to listen on (default: 22)')
    ssh.add_argument('--host-key', type=Path, help='SSH host private key (default: ./ssh_key)')
    ssh.add_argument('--allow', action='append', metavar='USER',
                     help='Only admit this SSH user; repeatable (default: admit everyone)')
    ssh.add_argument('--session-timeout', type=float,
                     help='Seconds before a session is closed (default: 1800)')
    ssh.add_argument('--status-port', type=int,
                     help='Also serve the read-only status API on this port')
    ssh.add_argument('--install-log', type=Path, help='Install log to summarize in sessions')

    readme = subparsers.add_parser('readme', help='Show the onboarding guide or a package README')
    readme.add_argument('package', nargs='?', help='Crate whose README to show')

    return parser


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
        stream=sys.stderr
    )


def install_all_packages(
    config: ProvisionerConfig,
    dry_run: bool = False,
    client: Optional[AirtableCatalogClient] = None,
    installer: Optional[PackageInstaller] = None
) -> int:
    """Fetch the catalog and install it, printing one status line per package."""
    if not config.airtable_key:
        print("Error: AIRTABLE_KEY must be set to fetch the package catalog", file=sys.stderr)
        return EXIT_CONFIG

    client = client or AirtableCatalogClient(
        base_id=config.base_id,
        table=config.table,
        view=config.view,
        api_url=config.api_url,
        timeout=config.fetch_timeout,
        max_attempts=config.max_attempts
    )

    try:
        snapshot = client.fetch(config.airtable_key)
    except (AuthError, ConfigurationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except TransientError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_TRANSIENT

    def print_result(result: InstallResult) -> None:
        print(result.describe(), flush=True)

    installer = installer or PackageInstaller(
        BackendRegistry.default(timeout=config.install_timeout),
        report_repository=JsonLinesInstallLog(config.install_log)
    )
    installer.on_result = print_result

    report = installer.install(snapshot, concurrency_limit=config.concurrency, dry_run=dry_run)

    for error in snapshot.schema_errors:
        print(f"ignored   catalog {error}", file=sys.stderr)
    print(("Dry run: " if dry_run else "") + report.summary())

    return EXIT_OK if report.succeeded else EXIT_FAILED


async def serve_sessions(config: ProvisionerConfig) -> None:
    slot = ReportSlot()
    slot.publish(JsonLinesInstallLog(config.install_log).latest())

    handler = SessionHandler(
        access_policy=AccessPolicy(config.allowed_principals),
        renderer=GlowRenderer(),
        onboarding_document=config.onboarding_document,
        report_slot=slot,
        session_timeout=config.session_timeout
    )
    gateway = SSHGateway(handler, config.ssh_host, config.ssh_port, config.host_key)
    await gateway.start()

    services = [gateway.serve_forever()]
    if config.status_port:
        status = uvicorn.Server(uvicorn.Config(
            initialize_app(slot),
            host=config.status_host,
            port=config.status_port,
            log_level=config.log_level.lower()
        ))
        services.append(status.serve())

    await asyncio.gather(*services)


def ssh_entrypoint(config: ProvisionerConfig) -> int:
    """Serve sessions until terminated; only startup failures produce a non-zero exit."""
    try:
        asyncio.run(serve_sessions(config))
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except KeyboardInterrupt:
        logger.info("Shutting down")
    return EXIT_OK


def readme(config: ProvisionerConfig, package: Optional[str] = None) -> int:
    """Page the onboarding guide, or a crate's README, through the renderer."""
    if package:
        document = find_package_readme(package)
        if document is None:
            print("Could not find package README!", file=sys.stderr)
            return EXIT_FAILED
    else:
        document = config.onboarding_document

    try:
        return GlowRenderer().page(document)
    except RenderError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILED


def main(argv: Optional[List[str]] = None) -> int:
    argv = list(sys.argv if argv is None else argv)
    invoked_as = Path(argv[0]).name if argv else 'cargo-cult'
    args_list = argv[1:]
    if invoked_as in ALIAS_NAMES:
        args_list = [invoked_as] + args_list

    parser = build_parser()
    args = parser.parse_args(args_list)

    config = ProvisionerConfig.from_environment()
    configure_logging(config.log_level)

    if args.command == 'install-all-packages':
        if args.concurrency:
            config.concurrency = args.concurrency
        if args.timeout:
            config.install_timeout = args.timeout
        if args.install_log:
            config.install_log = args.install_log
        return install_all_packages(config, dry_run=args.dry_run)

    if args.command == 'ssh-entrypoint':
        for key in ('host', 'port'):
            if getattr(args, key):
                setattr(config, f'ssh_{key}', getattr(args, key))
        if args.host_key:
            config.host_key = args.host_key
        if args.allow:
            config.allowed_principals = args.allow
        if args.session_timeout:
            config.session_timeout = args.session_timeout
        if args.status_port:
            config.status_port = args.status_port
        if args.install_log:
            config.install_log = args.install_log
        return ssh_entrypoint(config)

    if args.command == 'readme':
        return readme(config, args.package)

    parser.print_help()
    return EXIT_CONFIG


if __name__ == '__main__':
    sys.exit(main())
