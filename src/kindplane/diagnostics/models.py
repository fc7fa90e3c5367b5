"""Diagnostics report model.

A report is built fresh for each failed stage, rendered once and then
discarded. Nothing here talks to the cluster.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

DEFAULT_MAX_LOG_LINES = 30


class Component(str, Enum):
    """Part of the system a failed stage belongs to."""

    CLUSTER = "cluster"
    REGISTRY = "registry"
    CROSSPLANE = "crossplane"
    PROVIDERS = "providers"
    ESO = "eso"
    HELM = "helm"
    COMPOSITIONS = "compositions"


@dataclass
class DiagnosticsContext:
    """Where to look when collecting diagnostics for a component."""

    component: Component
    namespace: str = ""
    release_name: str = ""
    label_selector: str = ""
    provider_names: list[str] = field(default_factory=list)
    max_log_lines: int = DEFAULT_MAX_LOG_LINES


def default_context(component: Component) -> DiagnosticsContext:
    """Context with the usual namespace and label selector for a component."""
    ctx = DiagnosticsContext(component=component)
    if component == Component.CROSSPLANE:
        ctx.namespace = "crossplane-system"
        ctx.label_selector = "app=crossplane"
    elif component == Component.PROVIDERS:
        ctx.namespace = "crossplane-system"
    elif component == Component.ESO:
        ctx.namespace = "external-secrets"
        ctx.label_selector = "app.kubernetes.io/name=external-secrets"
    return ctx


@dataclass
class Condition:
    type: str
    status: str
    reason: str = ""
    message: str = ""


@dataclass
class ContainerDiagnostic:
    """State of one container (init containers included)."""

    name: str
    ready: bool = False
    state: str = ""
    restarts: int = 0
    waiting_reason: str = ""
    waiting_message: str = ""
    terminated_reason: str = ""
    terminated_message: str = ""
    exit_code: int = 0
    recent_logs: list[str] = field(default_factory=list)

    def has_issue(self) -> bool:
        if not self.ready or self.restarts > 0:
            return True
        if self.waiting_reason and self.waiting_reason != "ContainerCreating":
            return True
        if self.terminated_reason and self.terminated_reason != "Completed":
            return True
        return self.exit_code != 0

    def is_crash_looping(self) -> bool:
        return self.waiting_reason == "CrashLoopBackOff"

    def is_image_pull_error(self) -> bool:
        return self.waiting_reason in ("ImagePullBackOff", "ErrImagePull", "ErrImageNeverPull")


@dataclass
class PodDiagnostic:
    name: str
    namespace: str = ""
    phase: str = ""
    ready: bool = False
    ready_containers: int = 0
    total_containers: int = 0
    conditions: list[Condition] = field(default_factory=list)
    containers: list[ContainerDiagnostic] = field(default_factory=list)
    # Set when collection itself failed; the other fields are then empty
    error: str = ""


@dataclass
class ProviderDiagnostic:
    name: str
    package: str = ""
    revision: str = ""
    healthy: bool = False
    installed: bool = False
    conditions: list[Condition] = field(default_factory=list)


_FAILED_RELEASE_STATUSES = frozenset(
    {"failed", "pending-install", "pending-upgrade", "pending-rollback", "not-found"}
)


@dataclass
class ReleaseDiagnostic:
    """A Helm release as reported by ``helm status``."""

    name: str
    namespace: str = ""
    status: str = ""
    version: int = 0
    chart: str = ""
    app_version: str = ""
    description: str = ""
    error: str = ""
    notes: str = ""

    @property
    def is_failed(self) -> bool:
        return self.status in _FAILED_RELEASE_STATUSES


@dataclass
class DiagnosticsReport:
    """Everything collected for one failed stage."""

    component: Component
    pods: list[PodDiagnostic] = field(default_factory=list)
    providers: list[ProviderDiagnostic] = field(default_factory=list)
    helm_release: ReleaseDiagnostic | None = None
    # One entry per collection that degraded
    notes: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.pods or self.providers or self.helm_release or self.notes)

    def has_issues(self) -> bool:
        for pod in self.pods:
            if pod.error or not pod.ready or pod.phase == "Failed":
                return True
            if any(c.has_issue() for c in pod.containers):
                return True
        if any(not p.healthy for p in self.providers):
            return True
        return self.helm_release is not None and self.helm_release.status != "deployed"

    def unhealthy_providers(self) -> list[ProviderDiagnostic]:
        return [p for p in self.providers if not p.healthy]

    def provider_errors(self) -> list[str]:
        """``name: type - message`` for every False provider condition with a message."""
        return [
            f"{p.name}: {c.type} - {c.message}"
            for p in self.providers
            for c in p.conditions
            if c.status == "False" and c.message
        ]
