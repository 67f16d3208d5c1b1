from __future__ import annotations

import asyncio
from typing import Any, Optional

import pytest

from dav_panel.controller import ServerController
from dav_panel.models import CertConfig, Config, Liveness
from dav_panel.store import ConfigStore


class FakeBackend:
    """In-memory stand-in for the server process.

    `fail(name, exc)` makes a call raise, `hold(name)` parks it until the
    returned event is set.
    """

    def __init__(self) -> None:
        self.config = Config()
        self.status = Liveness.STOPPED
        self.calls: list[str] = []
        self.pushed: list[Config] = []
        self.certs: list[CertConfig] = []
        self._failures: dict[str, BaseException] = {}
        self._gates: dict[str, asyncio.Event] = {}

    def fail(self, name: str, exc: BaseException) -> None:
        self._failures[name] = exc

    def hold(self, name: str) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates[name] = gate
        return gate

    async def _enter(self, name: str) -> None:
        self.calls.append(name)
        gate = self._gates.get(name)
        if gate is not None:
            await gate.wait()
        failure = self._failures.get(name)
        if failure is not None:
            raise failure

    async def get_config(self) -> Config:
        await self._enter("get_config")
        return self.config

    async def update_config(self, config: Config) -> None:
        await self._enter("update_config")
        self.pushed.append(config)

    async def import_tls_cert(self, cert: CertConfig) -> None:
        await self._enter("import_tls_cert")
        self.certs.append(cert)

    async def start_server(self) -> None:
        await self._enter("start_server")
        self.status = Liveness.RUNNING

    async def stop_server(self) -> None:
        await self._enter("stop_server")
        self.status = Liveness.STOPPED

    async def check_server_status(self) -> Liveness:
        await self._enter("check_server_status")
        return self.status


class ScriptedInvoker:
    """Command invoker answering from a table and recording every call."""

    def __init__(
        self,
        responses: Optional[dict[str, Any]] = None,
        failures: Optional[dict[str, BaseException]] = None,
    ) -> None:
        self.responses = dict(responses or {})
        self.failures = dict(failures or {})
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def __call__(self, command: str, arguments: dict[str, Any]) -> Any:
        self.calls.append((command, arguments))
        if command in self.failures:
            raise self.failures[command]
        return self.responses.get(command)

    def commands(self) -> list[str]:
        return [command for command, _ in self.calls]


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def store() -> ConfigStore:
    return ConfigStore()


@pytest.fixture()
def controller(backend: FakeBackend, store: ConfigStore) -> ServerController:
    return ServerController(backend, store, poll_interval=0.01, operation_timeout=None)


@pytest.fixture()
def invoker() -> ScriptedInvoker:
    return ScriptedInvoker()
