"""Diagnostics collection for failed bootstrap stages.

Collection never raises: anything that goes wrong while gathering data
becomes a degraded entry plus a note on the report, so a partial report
still reaches the operator.
"""

from __future__ import annotations

from typing import Any

from ..bootstrap.interfaces import ChartInstaller, KubeClient
from ..shared.logging import get_logger
from .models import (
    Component,
    Condition,
    ContainerDiagnostic,
    DiagnosticsContext,
    DiagnosticsReport,
    PodDiagnostic,
    ProviderDiagnostic,
    ReleaseDiagnostic,
)

logger = get_logger(__name__)

PROVIDER_RESOURCE = "providers.pkg.crossplane.io"

_PROVIDER_COMPONENTS = (Component.CROSSPLANE, Component.PROVIDERS)


def _conditions(items: list[dict[str, Any]] | None) -> list[Condition]:
    return [
        Condition(
            type=c.get("type", ""),
            status=c.get("status", ""),
            reason=c.get("reason", "") or "",
            message=c.get("message", "") or "",
        )
        for c in items or []
    ]


def container_diagnostic(status: dict[str, Any]) -> ContainerDiagnostic:
    """Build a container entry from a pod's containerStatuses item."""
    diag = ContainerDiagnostic(
        name=status.get("name", ""),
        ready=bool(status.get("ready")),
        restarts=int(status.get("restartCount", 0)),
    )
    state = status.get("state", {}) or {}
    if "running" in state:
        diag.state = "Running"
    elif "waiting" in state:
        diag.state = "Waiting"
        diag.waiting_reason = state["waiting"].get("reason", "")
        diag.waiting_message = state["waiting"].get("message", "")
    elif "terminated" in state:
        diag.state = "Terminated"
        diag.terminated_reason = state["terminated"].get("reason", "")
        diag.terminated_message = state["terminated"].get("message", "")
        diag.exit_code = int(state["terminated"].get("exitCode", 0))

    # the previous run explains a restart loop
    last = (status.get("lastState", {}) or {}).get("terminated")
    if last and not diag.terminated_reason:
        diag.terminated_reason = last.get("reason", "")
        diag.terminated_message = last.get("message", "")
        diag.exit_code = int(last.get("exitCode", 0))
    return diag


def provider_diagnostic(obj: dict[str, Any]) -> ProviderDiagnostic:
    status = obj.get("status", {}) or {}
    diag = ProviderDiagnostic(
        name=obj.get("metadata", {}).get("name", ""),
        package=obj.get("spec", {}).get("package", ""),
        revision=status.get("currentRevision", ""),
        conditions=_conditions(status.get("conditions")),
    )
    for cond in diag.conditions:
        if cond.type == "Healthy":
            diag.healthy = cond.status == "True"
        elif cond.type == "Installed":
            diag.installed = cond.status == "True"
    return diag


def release_diagnostic(data: dict[str, Any]) -> ReleaseDiagnostic:
    """Build a release entry from ``helm status -o json`` output."""
    info = data.get("info", {}) or {}
    meta = (data.get("chart", {}) or {}).get("metadata", {}) or {}
    return ReleaseDiagnostic(
        name=data.get("name", ""),
        namespace=data.get("namespace", ""),
        status=info.get("status", ""),
        version=int(data.get("version", 0)),
        chart=f"{meta['name']}-{meta.get('version', '')}" if meta.get("name") else "",
        app_version=meta.get("appVersion", ""),
        description=info.get("description", ""),
        notes=info.get("notes", ""),
    )


class DiagnosticsCollector:
    """Gathers pod, provider and release diagnostics for one component."""

    def __init__(self, kube: KubeClient | None, charts: ChartInstaller | None = None):
        self.kube = kube
        self.charts = charts

    async def collect(self, ctx: DiagnosticsContext) -> DiagnosticsReport:
        """Collect what the context asks for.

        Args:
            ctx: Component, namespace, release and selector to inspect.

        Returns:
            DiagnosticsReport; degraded collections are recorded in ``notes``.
        """
        report = DiagnosticsReport(component=ctx.component)
        if self.kube is None:
            report.notes.append("no cluster connection; diagnostics unavailable")
            return report

        if ctx.namespace:
            try:
                report.pods = await self.collect_pods(ctx)
            except Exception as e:
                message = f"failed to collect pod diagnostics: {e}"
                report.pods = [PodDiagnostic(name="error", namespace=ctx.namespace, error=message)]
                report.notes.append(message)

        if ctx.component in _PROVIDER_COMPONENTS:
            try:
                report.providers = await self.collect_providers(ctx)
            except Exception as e:
                report.notes.append(f"failed to collect provider diagnostics: {e}")

        if ctx.release_name:
            try:
                report.helm_release = await self.collect_release(ctx)
            except Exception as e:
                report.notes.append(f"failed to collect helm diagnostics: {e}")

        logger.debug(
            "Diagnostics collected",
            component=ctx.component.value,
            pods=len(report.pods),
            providers=len(report.providers),
            notes=len(report.notes),
        )
        return report

    async def collect_pods(self, ctx: DiagnosticsContext) -> list[PodDiagnostic]:
        pods = await self.kube.list_pods(ctx.namespace, ctx.label_selector)
        return [await self._pod(pod, ctx) for pod in pods]

    async def _pod(self, pod: dict[str, Any], ctx: DiagnosticsContext) -> PodDiagnostic:
        meta = pod.get("metadata", {})
        status = pod.get("status", {}) or {}
        diag = PodDiagnostic(
            name=meta.get("name", ""),
            namespace=meta.get("namespace", ctx.namespace),
            phase=status.get("phase", ""),
            total_containers=len(pod.get("spec", {}).get("containers", []) or []),
            conditions=_conditions(status.get("conditions")),
        )
        diag.ready = any(c.type == "Ready" and c.status == "True" for c in diag.conditions)

        statuses = (status.get("initContainerStatuses") or []) + (status.get("containerStatuses") or [])
        for cs in statuses:
            container = container_diagnostic(cs)
            if container.ready:
                diag.ready_containers += 1
            if container.has_issue() and ctx.max_log_lines > 0:
                container.recent_logs = await self._logs(diag, container.name, ctx.max_log_lines)
            diag.containers.append(container)
        return diag

    async def _logs(self, pod: PodDiagnostic, container: str, tail: int) -> list[str]:
        try:
            return await self.kube.pod_logs(pod.namespace, pod.name, container, tail)
        except Exception as e:
            logger.debug("Log tail unavailable", pod=pod.name, container=container, error=str(e))
            return []

    async def collect_providers(self, ctx: DiagnosticsContext) -> list[ProviderDiagnostic]:
        items = await self.kube.list_resources(PROVIDER_RESOURCE)
        providers = [provider_diagnostic(obj) for obj in items]
        if ctx.provider_names:
            providers = [p for p in providers if p.name in ctx.provider_names]
        return providers

    async def collect_release(self, ctx: DiagnosticsContext) -> ReleaseDiagnostic:
        namespace = ctx.namespace or "default"
        if self.charts is None:
            return ReleaseDiagnostic(
                name=ctx.release_name, namespace=namespace, status="unknown", error="no helm client"
            )
        data = await self.charts.release_status(ctx.release_name, namespace)
        if data is None:
            return ReleaseDiagnostic(
                name=ctx.release_name,
                namespace=namespace,
                status="not-found",
                error="release: not found",
            )
        return release_diagnostic(data)
