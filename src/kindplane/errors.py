"""Error types for kindplane.

Every failure the bootstrap engine can surface maps onto one of these:
user cancellation, deadline expiry, a failed stage, or a failed external
command underneath a stage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class KindplaneError(Exception):
    """Base error class for kindplane errors."""

    message: str
    retryable: bool = False
    data: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message


@dataclass
class BootstrapCancelled(KindplaneError):
    """The execution scope was cancelled (user quit or parent shutdown)."""

    message: str = "cancelled by user"


@dataclass
class BootstrapTimedOut(KindplaneError):
    """The run deadline passed before the bootstrap completed."""

    message: str = "operation timed out"
    elapsed_seconds: float = 0.0

    def __post_init__(self) -> None:
        if self.elapsed_seconds:
            self.message = f"operation timed out after {self.elapsed_seconds:.0f}s"


@dataclass
class StageFailed(KindplaneError):
    """A bootstrap phase failed; carries the phase and the underlying cause."""

    message: str = "stage failed"
    phase: str = ""
    component: str | None = None
    cause: BaseException | None = None


@dataclass
class CommandError(KindplaneError):
    """An external command (kind, helm, kubectl, docker, git) failed."""

    message: str = "command failed"
    command: list[str] = field(default_factory=list)
    returncode: int | None = None
    stderr: str = ""


@dataclass
class ConfigError(KindplaneError):
    """Configuration file is missing or invalid."""

    message: str = "invalid configuration"
    path: str | None = None


@dataclass
class FatalProbeError(KindplaneError):
    """A readiness probe hit a condition that polling cannot recover from."""

    message: str = "readiness probe failed"
