"""Error types shared across pipeline stages."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class RigsmithError(Exception):
    """Base error.  Carries the failing stage and an optional scope.

    The scope is the inventory category or artifact family the error
    belongs to, so the operator can re-run just that part.
    """

    stage = "rigsmith"

    def __init__(self, message: str, *, scope: str | None = None) -> None:
        super().__init__(message)
        self.scope = scope

    def label(self) -> str:
        """Return ``stage`` or ``stage:scope`` for user-facing output."""
        if self.scope:
            return f"{self.stage}:{self.scope}"
        return self.stage


class ConfigError(RigsmithError):
    """Raised when ``.rigsmith/config.yml`` cannot be used."""

    stage = "config"


class InventoryError(RigsmithError):
    """Raised when a cloud resource category cannot be listed."""

    stage = "inventory"


class InterpretationError(RigsmithError):
    """Raised when a goal cannot be turned into an Intent on this path."""

    stage = "interpretation"


class GenerationError(RigsmithError):
    """Raised when an artifact family fails to build."""

    stage = "generation"


class WriteError(RigsmithError):
    """Raised when generated files cannot be materialized.

    ``written`` lists the files that were already on disk when the
    failure happened.
    """

    stage = "write"

    def __init__(
        self,
        message: str,
        *,
        scope: str | None = None,
        written: list[Path] | None = None,
    ) -> None:
        super().__init__(message, scope=scope)
        self.written: list[Path] = list(written or [])
