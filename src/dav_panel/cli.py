from __future__ import annotations

import asyncio
import logging
from getpass import getpass
from logging.handlers import RotatingFileHandler
from typing import Optional, Sequence

import structlog

from .config.settings import Settings, load_settings
from .panel import ControlPanel
from .rpc import BackendClient, CommandInvoker, load_invoker

logger = logging.getLogger(__name__)

_LOG_HANDLER_FLAG = "_dav_panel_file_handler"


def configure_logging(settings: Settings) -> None:
    """Route structlog through stdlib logging and persist records to a rotating file."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level)

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )

    try:
        log_dir = settings.state_directory / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / "dav-panel.log"
    except OSError as exc:  # pragma: no cover - filesystem dependent
        logger.warning("cli.logfile_init_failed error=%s", exc)
        return

    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        if getattr(handler, _LOG_HANDLER_FLAG, False):
            return

    handler = RotatingFileHandler(
        log_path,
        maxBytes=5_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
    )
    setattr(handler, _LOG_HANDLER_FLAG, True)
    root_logger.addHandler(handler)
    logger.info("cli.logfile_enabled path=%s", log_path)


def resolve_invoker(settings: Settings) -> CommandInvoker:
    if not settings.backend:
        raise SystemExit(
            "No backend configured; pass --backend module:attribute or set DAV_PANEL_BACKEND."
        )
    try:
        return load_invoker(settings.backend)
    except (ImportError, ValueError) as exc:
        raise SystemExit(f"Unable to load backend {settings.backend!r}: {exc}") from exc


def _raise_on_notifications(panel: ControlPanel) -> None:
    state = panel.state
    if state.last_warning is not None:
        raise SystemExit(f"Warning: {state.last_warning}")
    if state.last_error is not None:
        raise SystemExit(f"Error: {state.last_error}")


async def _prompt_secret(message: str) -> str:
    return await asyncio.to_thread(getpass, f"{message}: ")


async def status_command(*, settings: Settings, invoker: CommandInvoker) -> str:
    """Print the liveness reported by the backend."""
    backend = BackendClient(invoker)
    try:
        liveness = await backend.check_server_status()
    except Exception as exc:
        raise SystemExit(f"Error: {exc}") from exc
    print(liveness.value)
    return liveness.value


async def start_command(
    *,
    settings: Settings,
    invoker: CommandInvoker,
    ip: Optional[str] = None,
    port: Optional[int] = None,
    root: Optional[str] = None,
    user: Optional[str] = None,
    password: Optional[str] = None,
    tls: Optional[bool] = None,
) -> None:
    """Load the backend configuration, apply overrides and start the server."""
    panel = ControlPanel.from_settings(settings, invoker)
    await panel.load()
    _raise_on_notifications(panel)

    if ip is not None:
        panel.set_ip(ip)
    if port is not None:
        panel.set_port(port)
    if root is not None:
        panel.set_root(root)
    if tls is not None:
        panel.set_tls_enabled(tls)
    if user is not None:
        if password is None:
            password = await _prompt_secret(f"Password for {user}")
        panel.set_credentials(user, password)
        panel.set_auth_enabled(True)
    _raise_on_notifications(panel)

    await panel.controller.start()
    _raise_on_notifications(panel)
    config = panel.config
    print(f"Server running on {config.ip or '*'}:{config.effective_port()}")


async def stop_command(*, settings: Settings, invoker: CommandInvoker) -> None:
    panel = ControlPanel.from_settings(settings, invoker)
    await panel.controller.stop()
    _raise_on_notifications(panel)
    print("Server stopped")


async def import_cert_command(
    *,
    settings: Settings,
    invoker: CommandInvoker,
    cert: Optional[str],
    key: Optional[str],
) -> None:
    panel = ControlPanel.from_settings(settings, invoker)
    await panel.import_certificate(cert_path=cert, key_path=key)
    _raise_on_notifications(panel)
    print("TLS material imported")


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point for the DAV control panel."""
    import argparse

    parser = argparse.ArgumentParser(description="WebDAV server control panel")
    parser.add_argument(
        "--config",
        type=str,
        help="Path to a settings YAML file to load in addition to environment variables.",
    )
    parser.add_argument(
        "--backend",
        type=str,
        help="Command invoker used to reach the server process, as 'module:attribute'.",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("gui", help="Open the control panel window (default)")
    subparsers.add_parser("status", help="Print whether the server is running")
    subparsers.add_parser("stop", help="Stop the server")

    start_parser = subparsers.add_parser("start", help="Push the configuration and start the server")
    start_parser.add_argument("--ip", type=str, help="Bind address (empty for any).")
    start_parser.add_argument("--port", type=int, help="Bind port (defaults to 80, or 443 with TLS).")
    start_parser.add_argument("--root", type=str, help="Directory to serve.")
    start_parser.add_argument("--user", type=str, help="Enable login with this user name.")
    start_parser.add_argument(
        "--password",
        type=str,
        help="Login password (prompted for when --user is given without it).",
    )
    start_parser.add_argument(
        "--tls",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Serve over HTTPS using the imported certificate.",
    )

    cert_parser = subparsers.add_parser("import-cert", help="Import TLS certificate and/or key files")
    cert_parser.add_argument("--cert", type=str, help="PEM certificate path.")
    cert_parser.add_argument("--key", type=str, help="PEM private key path.")

    args = parser.parse_args(argv)

    settings = load_settings(config_path=args.config)
    if args.backend:
        settings.backend = args.backend
    configure_logging(settings)

    if args.command in (None, "gui"):
        from .gui.app import main as gui_main

        gui_main(settings, resolve_invoker(settings))
        return

    invoker = resolve_invoker(settings)

    if args.command == "status":
        asyncio.run(status_command(settings=settings, invoker=invoker))
        return

    if args.command == "stop":
        asyncio.run(stop_command(settings=settings, invoker=invoker))
        return

    if args.command == "import-cert":
        asyncio.run(import_cert_command(settings=settings, invoker=invoker, cert=args.cert, key=args.key))
        return

    asyncio.run(
        start_command(
            settings=settings,
            invoker=invoker,
            ip=args.ip,
            port=args.port,
            root=args.root,
            user=args.user,
            password=args.password,
            tls=args.tls,
        )
    )
