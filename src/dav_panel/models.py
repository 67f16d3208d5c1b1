from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ServerError, ValidationError

DEFAULT_HTTP_PORT = 80
DEFAULT_HTTPS_PORT = 443


class Config(BaseModel):
    """Editable configuration for the WebDAV server.

    Instances are immutable snapshots; the store replaces them wholesale on every
    edit. Wire names follow the backend (`enableTls`), python names are accepted
    on input as well.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    ip: Optional[str] = None
    port: Optional[int] = Field(default=None, ge=0, le=65535)
    root: Optional[str] = None
    auth: Optional[tuple[str, str]] = None
    enable_tls: Optional[bool] = Field(default=None, alias="enableTls")

    @field_validator("auth")
    @classmethod
    def _require_full_credentials(cls, value: Optional[tuple[str, str]]) -> Optional[tuple[str, str]]:
        if value is not None:
            username, password = value
            if not username or not password:
                raise ValueError("username and password must both be set to enable auth")
        return value

    def effective_port(self) -> int:
        if self.port is not None:
            return self.port
        return DEFAULT_HTTPS_PORT if self.enable_tls else DEFAULT_HTTP_PORT

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def log_fields(self) -> dict[str, Any]:
        fields = self.model_dump(mode="json", exclude={"auth"}, exclude_none=True)
        if self.auth is not None:
            fields["auth_user"] = self.auth[0]
        return fields


class CertConfig(BaseModel):
    """Paths of the TLS certificate and key handed to the backend for import."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    cert_path: Optional[str] = Field(default=None, alias="certPath")
    key_path: Optional[str] = Field(default=None, alias="keyPath")

    def is_empty(self) -> bool:
        return self.cert_path is None and self.key_path is None

    def merged(self, patch: CertConfig) -> CertConfig:
        return CertConfig(
            cert_path=patch.cert_path if patch.cert_path is not None else self.cert_path,
            key_path=patch.key_path if patch.key_path is not None else self.key_path,
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Liveness(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass(frozen=True)
class ServerState:
    liveness: Liveness = Liveness.STOPPED
    pending: bool = False
    last_error: Optional[ServerError] = None
    last_warning: Optional[ValidationError] = None

    @property
    def running(self) -> bool:
        return self.liveness is Liveness.RUNNING
