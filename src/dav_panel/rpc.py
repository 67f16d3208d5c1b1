from __future__ import annotations

import importlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import structlog

from .errors import ServerError, ValidationError
from .models import CertConfig, Config, Liveness

logger = structlog.get_logger(__name__)

CommandInvoker = Callable[[str, dict[str, Any]], Awaitable[Any]]


class Command:
    GET_CONFIG = "get_config"
    UPDATE_CONFIG = "update_config"
    IMPORT_TLS_CERT = "import_tls_or_cert_from_path"
    START_SERVER = "start_server"
    STOP_SERVER = "stop_server"
    CHECK_SERVER_STATUS = "check_server_status"


class BackendRpc(Protocol):
    async def get_config(self) -> Config: ...

    async def update_config(self, config: Config) -> None: ...

    async def import_tls_cert(self, cert: CertConfig) -> None: ...

    async def start_server(self) -> None: ...

    async def stop_server(self) -> None: ...

    async def check_server_status(self) -> Liveness: ...


@dataclass(slots=True)
class BackendClient:
    """Typed facade over the opaque command channel to the server process.

    The transport is whatever `invoke` does with a command name and its keyword
    arguments. Any failure it raises is reported as a `ServerError` carrying the
    backend's message.
    """

    invoke: CommandInvoker

    async def _call(self, command: str, **arguments: Any) -> Any:
        logger.debug("rpc.call", command=command)
        try:
            return await self.invoke(command, arguments)
        except ServerError:
            raise
        except Exception as exc:
            logger.warning("rpc.failed", command=command, error=str(exc))
            raise ServerError(str(exc) or type(exc).__name__, command=command) from exc

    async def get_config(self) -> Config:
        payload = await self._call(Command.GET_CONFIG)
        if payload is None:
            return Config()
        if isinstance(payload, Config):
            return payload
        try:
            return Config.model_validate(payload)
        except ValueError as exc:
            raise ServerError(f"Malformed configuration from backend: {exc}", command=Command.GET_CONFIG) from exc

    async def update_config(self, config: Config) -> None:
        await self._call(Command.UPDATE_CONFIG, config=config.to_wire())

    async def import_tls_cert(self, cert: CertConfig) -> None:
        if cert.is_empty():
            raise ValidationError("Either certPath or keyPath must be set.")
        await self._call(Command.IMPORT_TLS_CERT, **cert.to_wire())

    async def start_server(self) -> None:
        await self._call(Command.START_SERVER)

    async def stop_server(self) -> None:
        await self._call(Command.STOP_SERVER)

    async def check_server_status(self) -> Liveness:
        status = await self._call(Command.CHECK_SERVER_STATUS)
        try:
            return Liveness(status)
        except ValueError as exc:
            raise ServerError(
                f"Unknown server status {status!r}", command=Command.CHECK_SERVER_STATUS
            ) from exc


def load_invoker(target: Optional[str]) -> CommandInvoker:
    """Resolve a `package.module:attribute` string to a command invoker."""
    if not target or ":" not in target:
        raise ValueError(f"Backend must be given as 'module:attribute', got {target!r}")
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Backend must be given as 'module:attribute', got {target!r}")

    module = importlib.import_module(module_name)
    invoker: Any = module
    for part in attribute.split("."):
        try:
            invoker = getattr(invoker, part)
        except AttributeError as exc:
            raise ValueError(f"{module_name} has no attribute {attribute!r}") from exc
    if not callable(invoker):
        raise ValueError(f"Backend {target!r} is not callable")
    return invoker
