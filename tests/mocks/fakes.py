"""Fakes for every collaborator the bootstrap executor talks to.

They let the engine run end to end without kind, docker, helm or kubectl,
and record what the engine asked of them.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from kindplane.bootstrap.events import ProgressEvent
from kindplane.bootstrap.interfaces import (
    Collaborators,
    InstallOptions,
    PreloadResult,
    ProviderStatus,
)
from kindplane.bootstrap.poller import Readiness
from kindplane.bootstrap.progress import ProgressSink
from kindplane.config import ChartConfig, CompositionSource, Config
from kindplane.diagnostics.models import DiagnosticsReport

# =============================================================================
# Time
# =============================================================================


class ManualClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# =============================================================================
# Collaborator fakes
# =============================================================================


def ready_pod(name: str, namespace: str = "crossplane-system") -> dict[str, Any]:
    return {
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"containers": [{"name": "main"}]},
        "status": {
            "phase": "Running",
            "conditions": [{"type": "Ready", "status": "True"}],
            "containerStatuses": [
                {"name": "main", "ready": True, "restartCount": 0, "state": {"running": {}}}
            ],
        },
    }


def crashing_pod(name: str, namespace: str = "crossplane-system") -> dict[str, Any]:
    return {
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"containers": [{"name": "main"}]},
        "status": {
            "phase": "Running",
            "conditions": [
                {"type": "Ready", "status": "False", "message": "containers with unready status: [main]"}
            ],
            "containerStatuses": [
                {
                    "name": "main",
                    "ready": False,
                    "restartCount": 4,
                    "state": {"waiting": {"reason": "CrashLoopBackOff", "message": "back-off 40s"}},
                    "lastState": {"terminated": {"reason": "Error", "exitCode": 1}},
                }
            ],
        },
    }


@dataclass
class FakeCluster:
    existing: bool = False
    fail_create: Exception | None = None
    fail_delete: Exception | None = None
    steps: list[str] = field(default_factory=lambda: ["Ensuring node image", "Preparing nodes"])
    created: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    ca_updates: list[str] = field(default_factory=list)

    async def exists(self, name: str) -> bool:
        return self.existing

    async def create(self, config: Config, on_step) -> None:
        for step in self.steps:
            await on_step(step)
        if self.fail_create is not None:
            raise self.fail_create
        self.created.append(config.cluster.name)

    async def delete(self, name: str) -> None:
        if self.fail_delete is not None:
            raise self.fail_delete
        self.deleted.append(name)

    async def node_containers(self, name: str) -> list[str]:
        return [f"{name}-control-plane"]

    async def update_ca_certificates(self, name: str) -> None:
        self.ca_updates.append(name)


@dataclass
class FakeKube:
    pods: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    resources: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    logs: list[str] = field(default_factory=lambda: ["panic: boom"])
    ping_failures: int = 0
    fail_list_pods: Exception | None = None
    applied: list[str] = field(default_factory=list)
    applied_files: list[Path] = field(default_factory=list)
    pings: int = 0

    async def ping(self) -> None:
        self.pings += 1
        if self.pings <= self.ping_failures:
            raise ConnectionError("connection refused")

    async def list_pods(self, namespace: str, label_selector: str = "") -> list[dict[str, Any]]:
        if self.fail_list_pods is not None:
            raise self.fail_list_pods
        return self.pods.get(namespace, [])

    async def pod_logs(self, namespace: str, pod: str, container: str, tail: int) -> list[str]:
        return self.logs[-tail:]

    async def list_resources(self, resource: str, namespace: str = "") -> list[dict[str, Any]]:
        return self.resources.get(resource, [])

    async def node_names(self) -> list[str]:
        return ["kindplane-control-plane"]

    async def ensure_namespace(self, name: str) -> None:
        self.applied.append(f"namespace/{name}")

    async def apply(self, manifest: str) -> None:
        self.applied.append(manifest)

    async def apply_file(self, path: Path) -> None:
        self.applied_files.append(path)


@dataclass
class FakeCharts:
    fail: dict[str, Exception] = field(default_factory=dict)
    releases: dict[str, dict[str, Any]] = field(default_factory=dict)
    installed: list[str] = field(default_factory=list)

    async def install(self, chart: ChartConfig, options: InstallOptions | None = None) -> None:
        if chart.name in self.fail:
            raise self.fail[chart.name]
        if options is not None and options.values_logger is not None:
            await options.values_logger(chart.name, dict(chart.values))
        self.installed.append(chart.name)

    async def release_status(self, name: str, namespace: str) -> dict[str, Any] | None:
        return self.releases.get(name)


@dataclass
class FakeControlPlane:
    fail_install: Exception | None = None
    # Readiness answers in order; the last one repeats
    readiness: list[Readiness] = field(default_factory=lambda: [Readiness(snapshot=(), all_ready=True)])
    installs: int = 0

    async def install(self, on_step, options: InstallOptions | None = None) -> None:
        await on_step("Installing Helm chart", 0.5)
        if self.fail_install is not None:
            raise self.fail_install
        self.installs += 1

    async def pod_readiness(self) -> Readiness:
        if len(self.readiness) > 1:
            return self.readiness.pop(0)
        return self.readiness[0]


@dataclass
class FakeProviders:
    healthy: bool = True
    installed: list[str] = field(default_factory=list)

    async def install_provider(self, name: str, package: str) -> None:
        self.installed.append(name)

    async def get_status(self) -> list[ProviderStatus]:
        return [ProviderStatus(name=n, healthy=self.healthy) for n in self.installed]


@dataclass
class FakeRegistry:
    port: int = 5001
    created: int = 0
    configured_nodes: list[str] = field(default_factory=list)
    networks: list[str] = field(default_factory=list)
    published: int = 0
    fail_publish: Exception | None = None

    @property
    def host(self) -> str:
        return f"localhost:{self.port}"

    async def create(self) -> None:
        self.created += 1

    async def probe(self) -> Readiness:
        return Readiness(snapshot=200, all_ready=True)

    async def configure_nodes(self, nodes: list[str]) -> None:
        self.configured_nodes.extend(nodes)

    async def connect_to_network(self, network: str = "kind") -> None:
        self.networks.append(network)

    async def publish_hosting(self, kube) -> None:
        if self.fail_publish is not None:
            raise self.fail_publish
        self.published += 1

    async def remove(self) -> None:
        pass


@dataclass
class FakeImages:
    result: PreloadResult = field(default_factory=PreloadResult)
    fail: Exception | None = None
    preloads: int = 0
    pulled: list[str] = field(default_factory=list)

    async def preload(self, cluster_name: str, on_step) -> PreloadResult:
        self.preloads += 1
        if self.fail is not None:
            raise self.fail
        return self.result

    async def pull(self, images: list[str], on_step) -> int:
        self.pulled.extend(images)
        return len(images)


@dataclass
class FakeCompositions:
    fail: Exception | None = None
    applied: list[CompositionSource] = field(default_factory=list)

    async def apply(self, source: CompositionSource, kube) -> int:
        if self.fail is not None:
            raise self.fail
        self.applied.append(source)
        return 1


@dataclass
class RecordingDiagnostics:
    reports: list[DiagnosticsReport] = field(default_factory=list)
    flushes: int = 0

    def report(self, report: DiagnosticsReport) -> None:
        self.reports.append(report)

    def flush(self) -> None:
        self.flushes += 1


class RecordingSink(ProgressSink):
    """ProgressSink that keeps every event in order."""

    def __init__(self):
        self.events: list[ProgressEvent] = []
        self.closed = False

    async def emit(self, event: ProgressEvent) -> None:
        self.events.append(event)

    async def close(self) -> None:
        self.closed = True

    def of_type(self, cls) -> list:
        return [e for e in self.events if isinstance(e, cls)]


class HangingCluster(FakeCluster):
    """Cluster whose creation never finishes on its own."""

    async def create(self, config: Config, on_step) -> None:
        await on_step("Preparing nodes")
        await asyncio.Event().wait()


@dataclass
class HangingKube(FakeKube):
    """Kube client whose pod listing never returns; ``listing`` is set once it is called."""

    listing: asyncio.Event = field(default_factory=asyncio.Event)

    async def list_pods(self, namespace: str, label_selector: str = "") -> list[dict[str, Any]]:
        self.listing.set()
        await asyncio.Event().wait()
        return []


def make_collaborators(**overrides) -> Collaborators:
    """Collaborators built from fresh fakes, with any part replaced."""
    parts = dict(
        cluster=FakeCluster(),
        kube=FakeKube(),
        charts=FakeCharts(),
        control_plane=FakeControlPlane(),
        providers=FakeProviders(),
        images=FakeImages(),
        compositions=FakeCompositions(),
        diagnostics=RecordingDiagnostics(),
        registry=None,
    )
    parts.update(overrides)
    return Collaborators(**parts)
