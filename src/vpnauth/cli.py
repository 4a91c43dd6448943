"""
vpnauth command line interface.

Authenticates (reusing, refreshing or creating a session), lists the
online servers in the requested countries and optionally requests a
WireGuard certificate for a supplied public key.

Exit codes: 0 on success, 1 on any vpnauth error, 2 on bad arguments.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from typing import Callable, List, Optional, Sequence

import structlog
from rich.console import Console
from rich.table import Table

from vpnauth import __version__
from vpnauth.api.client import AuthAPIClient
from vpnauth.api.constants import DEFAULT_API_URL
from vpnauth.api.transport import APITransport
from vpnauth.config import DEFAULT_CERT_DURATION, ClientConfig
from vpnauth.core.exceptions import InputError, VPNAuthError, is_account_error, is_captcha_error
from vpnauth.core.srp import SRPProofEngine, load_proof_engine
from vpnauth.core.timeutil import parse_session_duration, parse_to_minutes
from vpnauth.core.types import Session
from vpnauth.prompt import CredentialPrompter, TerminalPrompter
from vpnauth.session.lifecycle import SessionLifecycle
from vpnauth.session.store import SessionStore, default_session_path
from vpnauth.vpn.client import VPNClient, servers_in_countries

TransportFactory = Callable[[ClientConfig, float], APITransport]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vpnauth",
        description="Authenticate to the VPN API and manage the cached session.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    auth = parser.add_argument_group("authentication")
    auth.add_argument("--username", default=None, help="account username")
    auth.add_argument("--password", default=None, help="account password (prompted if omitted)")
    auth.add_argument(
        "--srp-engine",
        default=None,
        metavar="MODULE:ATTR",
        help="SRP proof engine to use for password logins",
    )

    servers = parser.add_argument_group("servers")
    servers.add_argument(
        "--countries",
        required=True,
        help="comma-separated exit country codes (e.g. US,NL,CH)",
    )

    cert = parser.add_argument_group("certificate")
    cert.add_argument("--public-key", default=None, metavar="PATH", help="PEM public key to certify")
    cert.add_argument("--device-name", default="", help="device name (auto-generated if empty)")
    cert.add_argument(
        "--duration",
        default=DEFAULT_CERT_DURATION,
        help="certificate duration (e.g. 30m, 24h, 7d, 1h30m). Max: 365d",
    )
    cert.add_argument("--no-accelerator", action="store_true", help="disable VPN accelerator")

    session = parser.add_argument_group("session")
    session.add_argument("--clear-session", action="store_true", help="clear saved session and log in again")
    session.add_argument("--no-session", action="store_true", help="don't save or use a saved session")
    session.add_argument("--force-refresh", action="store_true", help="refresh the saved session even if not expiring")
    session.add_argument(
        "--session-duration",
        default="0",
        help="session cache duration (e.g. 12h, 24h, 7d). 0 = server lifetime",
    )
    session.add_argument("--session-file", default=None, metavar="PATH", help="session file location")

    parser.add_argument("--api-url", default=DEFAULT_API_URL, help="API base URL")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    return parser


def config_from_args(args: argparse.Namespace) -> ClientConfig:
    """
    Build the run configuration.

    Raises:
        InputError: If a duration or the country list is invalid
    """
    countries = [c for c in args.countries.split(",") if c.strip()]
    if not countries:
        raise InputError("at least one country code is required")

    # Validated here so a bad value fails before any network call.
    parse_to_minutes(args.duration)

    return ClientConfig(
        username=args.username,
        password=args.password,
        clear_session=args.clear_session,
        no_session=args.no_session,
        force_refresh=args.force_refresh,
        session_duration=parse_session_duration(args.session_duration),
        api_url=args.api_url,
        session_path=args.session_file,
        srp_engine=args.srp_engine,
        countries=countries,
        public_key_path=args.public_key,
        device_name=args.device_name,
        cert_duration=args.duration,
        accelerator=not args.no_accelerator,
        debug=args.debug,
    )


def configure_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.WARNING
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def _default_transport(config: ClientConfig, timeout: float) -> APITransport:
    return APITransport(
        base_url=config.api_url,
        timeout=timeout,
        app_version=config.app_version,
        user_agent=config.user_agent,
    )


def build_lifecycle(
    config: ClientConfig,
    prompter: CredentialPrompter,
    transport_factory: TransportFactory = _default_transport,
    srp_engine: Optional[SRPProofEngine] = None,
) -> SessionLifecycle:
    transport = transport_factory(config, config.auth_timeout)

    factory = None
    if srp_engine is None and config.srp_engine:
        engine_path = config.srp_engine
        factory = lambda: load_proof_engine(engine_path)  # noqa: E731

    return SessionLifecycle(
        config=config,
        api=AuthAPIClient(transport),
        store=SessionStore(path=config.session_path or default_session_path()),
        prompter=prompter,
        srp_engine=srp_engine,
        srp_engine_factory=factory,
    )


def _print_session(console: Console, lifecycle: SessionLifecycle) -> None:
    context = lifecycle.context
    origin = context.origin.name.lower() if context.origin else "unknown"
    scopes = ", ".join(sorted(context.session.scopes)) if context.session else ""
    console.print(f"Session: {origin} for {lifecycle.username} (scopes: {scopes})", markup=False)


def _print_servers(console: Console, servers: Sequence) -> None:
    table = Table(title="Servers")
    table.add_column("Name", style="bold")
    table.add_column("Country")
    table.add_column("City")
    table.add_column("Tier", justify="right")
    table.add_column("Load", justify="right")
    table.add_column("Score", justify="right")
    for server in servers:
        table.add_row(
            server.name,
            server.exit_country,
            server.city,
            str(server.tier),
            f"{server.load}%",
            f"{server.score:.2f}",
        )
    console.print(table)


def run(
    config: ClientConfig,
    prompter: CredentialPrompter,
    console: Console,
    transport_factory: TransportFactory = _default_transport,
    srp_engine: Optional[SRPProofEngine] = None,
) -> Session:
    """
    Authenticate, list servers and optionally request a certificate.

    Raises:
        VPNAuthError: Any fatal error
    """
    lifecycle = build_lifecycle(config, prompter, transport_factory, srp_engine)
    session = lifecycle.run()
    console.print("Authentication successful!")
    _print_session(console, lifecycle)
    if config.debug:
        console.print(lifecycle.export_trace_json(), markup=False)

    vpn = VPNClient(transport_factory(config, config.vpn_timeout), session)

    if config.public_key_path is not None:
        try:
            public_key = config.public_key_path.read_text(encoding="utf-8")
        except OSError as e:
            raise InputError(f"cannot read public key: {e}") from e
        device_name = config.device_name or f"WireGuard-{lifecycle.username}-{int(time.time())}"
        certificate = vpn.get_certificate(
            public_key,
            device_name,
            parse_to_minutes(config.cert_duration),
            accelerator=config.accelerator,
        )
        console.print(f"Device name: {certificate.device_name} (visible in the VPN dashboard)")

    servers = servers_in_countries(vpn.get_servers(), config.countries)
    if not servers:
        raise InputError(f"no online servers found in: {', '.join(config.countries)}")
    _print_servers(console, servers)
    return session


def error_hint(error: VPNAuthError) -> Optional[str]:
    if is_captcha_error(error):
        return "Log in once through the web client to complete the CAPTCHA, then retry."
    if is_account_error(error):
        return "Check the account status in the web client."
    return None


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.debug)

    console = Console()
    err_console = Console(stderr=True, highlight=False)
    try:
        config = config_from_args(args)
        run(config, TerminalPrompter(console=err_console), console)
    except VPNAuthError as e:
        err_console.print(f"Error: {e.message}", markup=False)
        hint = error_hint(e)
        if hint:
            err_console.print(hint, markup=False)
        return 1
    except KeyboardInterrupt:
        err_console.print("Interrupted", markup=False)
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
