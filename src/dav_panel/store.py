from __future__ import annotations

import threading
from collections.abc import Callable, Mapping
from typing import Any, Optional, Union

import pydantic
import structlog

from .errors import ValidationError
from .models import CertConfig, Config

logger = structlog.get_logger(__name__)

ConfigListener = Callable[[Config], None]
ConfigPatch = Union[Config, Callable[[Config], Config]]


class ConfigStore:
    """Single owner of the configuration draft and the TLS material paths.

    Mutations are applied under a lock so two patches never interleave;
    listeners run after the lock is released and receive the new snapshot.
    """

    def __init__(self, config: Optional[Config] = None) -> None:
        self._lock = threading.Lock()
        self._config = config or Config()
        self._cert = CertConfig()
        self._listeners: list[ConfigListener] = []

    def get_config(self) -> Config:
        return self._config

    @property
    def cert(self) -> CertConfig:
        return self._cert

    def subscribe(self, listener: ConfigListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def set_config(self, patch: ConfigPatch) -> Config:
        with self._lock:
            updated = patch(self._config) if callable(patch) else patch
            if not isinstance(updated, Config):
                raise TypeError(f"Config patch produced {type(updated).__name__}, expected Config")
            self._config = updated
        self._notify(updated)
        return updated

    def update(self, **fields: Any) -> Config:
        """Merge individual fields into the current draft, validating the result."""

        def _apply(old: Config) -> Config:
            data = old.model_dump()
            data.update(fields)
            try:
                return Config.model_validate(data)
            except pydantic.ValidationError as exc:
                raise ValidationError(_describe(exc)) from exc

        return self.set_config(_apply)

    def set_auth(self, enabled: bool, username: str, password: str) -> Config:
        if not enabled:
            return self.update(auth=None)
        if not username or not password:
            raise ValidationError("User and password must be set to enable login.")
        return self.update(auth=(username, password))

    def set_cert_path(self, patch: Union[CertConfig, Mapping[str, Optional[str]]]) -> CertConfig:
        if not isinstance(patch, CertConfig):
            patch = CertConfig.model_validate(dict(patch))
        if patch.is_empty():
            raise ValidationError("Either certPath or keyPath must be set.")
        with self._lock:
            self._cert = self._cert.merged(patch)
            return self._cert

    def _notify(self, config: Config) -> None:
        for listener in list(self._listeners):
            try:
                listener(config)
            except Exception:
                logger.exception("store.listener.failed")


def _describe(exc: pydantic.ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "config"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)
