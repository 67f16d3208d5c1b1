from __future__ import annotations

from typing import Optional


class PanelError(RuntimeError):
    """Base class for failures presented to the operator."""


class ValidationError(PanelError):
    """Raised when a local precondition fails before anything reaches the backend."""


class ServerError(PanelError):
    """Raised when a backend command is rejected or cannot be delivered."""

    def __init__(self, message: str, *, command: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.command = command
