from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from contextlib import asynccontextmanager, contextmanager, suppress
from dataclasses import replace
from typing import Any, Optional

import structlog

from .errors import ServerError, ValidationError
from .models import Config, Liveness, ServerState
from .rpc import BackendRpc
from .store import ConfigStore

logger = structlog.get_logger(__name__)

StateListener = Callable[[ServerState], None]


class ServerController:
    """Owns the authoritative `ServerState` of the external WebDAV server.

    Start and stop requests are serialized through the `pending` flag: while one
    is in flight further requests are ignored and poll results are not written.
    All backend failures end up in `last_error`; nothing propagates to callers.
    """

    def __init__(
        self,
        backend: BackendRpc,
        store: ConfigStore,
        *,
        poll_interval: float = 2.0,
        operation_timeout: Optional[float] = 30.0,
    ) -> None:
        self._backend = backend
        self._store = store
        self._poll_interval = poll_interval
        self._operation_timeout = operation_timeout if operation_timeout and operation_timeout > 0 else None
        self._state = ServerState()
        # bumped when an operation begins and ends; polls started in another epoch are stale
        self._epoch = 0
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # region operations
    async def start(self, config: Optional[Config] = None) -> bool:
        """Push `config` (or the current draft) to the backend and start the server."""
        payload = config if config is not None else self._store.get_config()

        async def _start() -> None:
            logger.info("controller.start.requested", **payload.log_fields())
            await self._backend.update_config(payload)
            await self._backend.start_server()

        return await self._run_operation("start", _start, Liveness.RUNNING)

    async def stop(self) -> bool:
        return await self._run_operation("stop", self._backend.stop_server, Liveness.STOPPED)

    async def _run_operation(
        self,
        name: str,
        call: Callable[[], Awaitable[Any]],
        outcome: Liveness,
    ) -> bool:
        if self._state.pending:
            logger.info("controller.operation.ignored", operation=name, reason="operation in flight")
            return False

        with self._pending_operation():
            try:
                await self._bounded(name, call())
            except ServerError as exc:
                logger.warning(
                    "controller.operation.failed",
                    operation=name,
                    command=exc.command,
                    error=exc.message,
                )
                self._update(last_error=exc)
                return False
            except Exception as exc:
                logger.exception("controller.operation.crashed", operation=name)
                self._update(last_error=ServerError(str(exc) or type(exc).__name__))
                return False

            self._update(liveness=outcome)
            logger.info("controller.operation.succeeded", operation=name, liveness=outcome.value)
            return True

    @contextmanager
    def _pending_operation(self) -> Iterator[None]:
        self._epoch += 1
        self._update(pending=True, last_error=None)
        try:
            yield
        finally:
            self._epoch += 1
            self._update(pending=False)

    async def _bounded(self, name: str, awaitable: Awaitable[Any]) -> Any:
        if self._operation_timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, self._operation_timeout)
        except asyncio.TimeoutError as exc:
            raise ServerError(f"Server {name} timed out after {self._operation_timeout:g}s") from exc

    # endregion

    # region polling
    async def poll_once(self) -> Optional[Liveness]:
        """Reconcile `liveness` with the backend unless an operation is in flight."""
        if self._state.pending:
            logger.debug("controller.poll.skipped", reason="operation in flight")
            return None

        epoch = self._epoch
        try:
            liveness = await self._backend.check_server_status()
        except Exception as exc:
            logger.warning("controller.poll.failed", error=str(exc))
            return None

        if self._state.pending or epoch != self._epoch:
            logger.debug("controller.poll.stale", reported=liveness.value)
            return None
        if liveness is not self._state.liveness:
            logger.info("controller.poll.changed", liveness=liveness.value)
            self._update(liveness=liveness)
        return liveness

    async def run_polling(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self._poll_interval)

    @asynccontextmanager
    async def polling(self) -> AsyncIterator[asyncio.Task[None]]:
        """Keep a poll task alive for the duration of the block."""
        task = asyncio.create_task(self.run_polling())
        logger.debug("controller.polling.started", interval=self._poll_interval)
        try:
            yield task
        finally:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
            logger.debug("controller.polling.stopped")

    # endregion

    # region notifications
    def report_warning(self, warning: ValidationError) -> None:
        logger.info("controller.warning", message=str(warning))
        self._update(last_warning=warning)

    def report_error(self, error: ServerError) -> None:
        self._update(last_error=error)

    def acknowledge(self) -> None:
        if self._state.last_error is None and self._state.last_warning is None:
            return
        self._update(last_error=None, last_warning=None)

    def _update(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)
        state = self._state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("controller.listener.failed")

    # endregion
