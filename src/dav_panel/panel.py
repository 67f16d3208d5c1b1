from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Optional, Protocol

import structlog

from .config.settings import Settings
from .controller import ServerController
from .errors import ServerError, ValidationError
from .models import CertConfig, Config, ServerState
from .rpc import BackendClient, BackendRpc, CommandInvoker, load_invoker
from .store import ConfigStore

logger = structlog.get_logger(__name__)

ROOT_PICKER_TITLE = "Select Dav directory"


class FilePicker(Protocol):
    async def pick_directory(self, title: str) -> Optional[str]: ...


class ControlPanel:
    """Operator-facing actions of the control panel, independent of any UI toolkit.

    Field edits go to the `ConfigStore`; start/stop goes through the
    `ServerController`. Local validation failures are recorded as the
    controller's `last_warning` so the front-end can show them as a dialog.
    """

    def __init__(
        self,
        backend: BackendRpc,
        *,
        store: Optional[ConfigStore] = None,
        controller: Optional[ServerController] = None,
        poll_interval: float = 2.0,
        operation_timeout: Optional[float] = 30.0,
    ) -> None:
        self.backend = backend
        self.store = store or ConfigStore()
        self.controller = controller or ServerController(
            backend,
            self.store,
            poll_interval=poll_interval,
            operation_timeout=operation_timeout,
        )
        self.username = ""
        self.password = ""
        self.auth_enabled = False

    @classmethod
    def from_settings(cls, settings: Settings, invoker: Optional[CommandInvoker] = None) -> ControlPanel:
        if invoker is None:
            invoker = load_invoker(settings.backend)
        return cls(
            BackendClient(invoker),
            poll_interval=settings.poll_interval_seconds,
            operation_timeout=settings.operation_timeout_seconds,
        )

    @property
    def config(self) -> Config:
        return self.store.get_config()

    @property
    def state(self) -> ServerState:
        return self.controller.state

    @property
    def is_running(self) -> bool:
        return self.controller.state.running

    async def load(self) -> Config:
        """Fetch the backend's configuration once and make it the current draft."""
        try:
            config = await self.backend.get_config()
        except ServerError as exc:
            logger.error("panel.load.failed", error=exc.message)
            self.controller.report_error(exc)
            return self.store.get_config()

        self.store.set_config(config)
        if config.auth is not None:
            self.username, self.password = config.auth
            self.auth_enabled = True
        logger.info("panel.load.succeeded", **config.log_fields())
        return config

    @asynccontextmanager
    async def active(self) -> AsyncIterator[ControlPanel]:
        """Load the configuration and keep status polling running inside the block."""
        await self.load()
        async with self.controller.polling():
            yield self

    # region field edits
    def set_ip(self, ip: Optional[str]) -> bool:
        return self._edit(ip=(ip or "").strip() or None)

    def set_port(self, port: Optional[int]) -> bool:
        return self._edit(port=port)

    def set_root(self, root: Optional[str]) -> bool:
        return self._edit(root=root or None)

    def set_tls_enabled(self, enabled: bool) -> bool:
        return self._edit(enable_tls=enabled)

    def _edit(self, **fields: object) -> bool:
        try:
            self.store.update(**fields)
        except ValidationError as exc:
            self.controller.report_warning(exc)
            return False
        return True

    # endregion

    # region auth
    def set_credentials(self, username: str, password: str) -> None:
        self.username = username
        self.password = password
        if not self.auth_enabled:
            return
        try:
            self.store.set_auth(True, username, password)
        except ValidationError as exc:
            # never keep a half-filled credential pair active
            self.auth_enabled = False
            self.store.set_auth(False, username, password)
            self.controller.report_warning(exc)

    def set_auth_enabled(self, enabled: bool) -> bool:
        try:
            self.store.set_auth(enabled, self.username, self.password)
        except ValidationError as exc:
            logger.info("panel.auth.rejected", reason=str(exc))
            self.controller.report_warning(exc)
            return False
        self.auth_enabled = enabled
        return True

    # endregion

    async def browse_root(self, picker: FilePicker, title: str = ROOT_PICKER_TITLE) -> Optional[str]:
        try:
            path = await picker.pick_directory(title)
        except Exception:
            logger.exception("panel.browse.failed")
            return None
        if not path:
            return None
        self.set_root(path)
        return path

    async def import_certificate(
        self,
        cert_path: Optional[str] = None,
        key_path: Optional[str] = None,
    ) -> bool:
        try:
            cert = self.store.set_cert_path(CertConfig(cert_path=cert_path, key_path=key_path))
            await self.backend.import_tls_cert(cert)
        except ValidationError as exc:
            self.controller.report_warning(exc)
            return False
        except ServerError as exc:
            logger.warning("panel.cert.import_failed", error=exc.message)
            self.controller.report_error(exc)
            return False
        logger.info("panel.cert.imported", cert_path=cert.cert_path, key_path=cert.key_path)
        return True

    async def toggle_server(self) -> bool:
        if self.controller.state.running:
            return await self.controller.stop()
        return await self.controller.start()

    def acknowledge(self) -> None:
        self.controller.acknowledge()
