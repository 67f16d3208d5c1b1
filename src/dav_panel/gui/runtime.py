from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from PySide6.QtCore import QObject, Signal
from PySide6.QtWidgets import QFileDialog, QWidget

from ..models import Config, ServerState
from ..panel import ControlPanel

logger = logging.getLogger(__name__)

CoroutineFactory = Callable[[], Awaitable[Any]]


class LoopThread:
    """Runs the panel's asyncio loop in a background thread.

    Every store edit and controller call is marshalled onto this loop, so the
    panel is only ever mutated from one thread. Status polling lives as long as
    the loop does and is torn down by `stop()`.
    """

    def __init__(self, panel: ControlPanel) -> None:
        self._panel = panel
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown: Optional[asyncio.Event] = None
        self._ready = threading.Event()

    def is_running(self) -> bool:
        return self._loop is not None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            raise RuntimeError("Panel loop is already running")
        self._ready.clear()
        self._thread = threading.Thread(target=self._thread_main, name="dav-panel-loop", daemon=True)
        self._thread.start()
        self._ready.wait()

    def stop(self, timeout: float = 5.0) -> None:
        loop, shutdown = self._loop, self._shutdown
        if loop is not None and shutdown is not None:
            loop.call_soon_threadsafe(shutdown.set)
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def call(self, func: Callable[..., Any], *args: Any) -> None:
        loop = self._loop
        if loop is None:
            logger.warning("gui.loop.not_running call=%s", getattr(func, "__name__", func))
            return
        loop.call_soon_threadsafe(self._guarded_call, func, args)

    def submit(self, factory: CoroutineFactory) -> Optional[concurrent.futures.Future]:
        loop = self._loop
        if loop is None:
            logger.warning("gui.loop.not_running")
            return None
        return asyncio.run_coroutine_threadsafe(self._guarded(factory), loop)

    def _thread_main(self) -> None:
        try:
            asyncio.run(self._run())
        except Exception:  # pragma: no cover - runtime safeguard
            logger.exception("gui.loop.crashed")
        finally:
            self._loop = None
            self._shutdown = None
            self._ready.set()

    async def _run(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._shutdown = asyncio.Event()
        self._ready.set()
        async with self._panel.active():
            await self._shutdown.wait()

    @staticmethod
    def _guarded_call(func: Callable[..., Any], args: tuple[Any, ...]) -> None:
        try:
            func(*args)
        except Exception:
            logger.exception("gui.loop.call_failed")

    @staticmethod
    async def _guarded(factory: CoroutineFactory) -> Any:
        try:
            return await factory()
        except Exception:
            logger.exception("gui.loop.task_failed")
            return None


class StateBridge(QObject):
    """Re-emits store and controller notifications as Qt signals."""

    config_changed = Signal(object)
    state_changed = Signal(object)

    def __init__(self, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._unsubscribers: list[Callable[[], None]] = []

    def attach(self, panel: ControlPanel) -> None:
        self.detach()
        self._unsubscribers = [
            panel.store.subscribe(self._on_config),
            panel.controller.subscribe(self._on_state),
        ]

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    def _on_config(self, config: Config) -> None:
        self.config_changed.emit(config)

    def _on_state(self, state: ServerState) -> None:
        self.state_changed.emit(state)


class QtDirectoryPicker(QObject):
    """Directory picker backed by `QFileDialog`, awaitable from the panel loop."""

    _requested = Signal(object, str)

    def __init__(self, parent_widget: Optional[QWidget] = None) -> None:
        super().__init__()
        self._parent_widget = parent_widget
        self._requested.connect(self._open_dialog)

    async def pick_directory(self, title: str) -> Optional[str]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Optional[str]] = loop.create_future()
        self._requested.emit((loop, future), title)
        return await future

    def _open_dialog(self, pending: tuple[asyncio.AbstractEventLoop, asyncio.Future], title: str) -> None:
        loop, future = pending
        path = QFileDialog.getExistingDirectory(self._parent_widget, title)
        loop.call_soon_threadsafe(_resolve, future, path or None)


def _resolve(future: asyncio.Future, value: Optional[str]) -> None:
    if not future.done():
        future.set_result(value)
