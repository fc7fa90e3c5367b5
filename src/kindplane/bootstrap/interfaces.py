"""Collaborator contracts consumed by the bootstrap executor.

The executor only talks to these protocols. Concrete implementations shell
out to kind, kubectl, helm, docker and git; tests substitute fakes.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from .poller import Readiness

if TYPE_CHECKING:
    from ..config import ChartConfig, CompositionSource, Config
    from ..diagnostics.models import DiagnosticsReport

# Async progress callback: (step description, progress ratio or INDETERMINATE)
StepCallback = Callable[[str, float], Awaitable[None]]

# Async callback for a plain step description
MessageCallback = Callable[[str], Awaitable[None]]

ValuesTransformer = Callable[[dict[str, Any]], dict[str, Any]]
ValuesLogger = Callable[[str, dict[str, Any]], Awaitable[None]]


@dataclass
class InstallOptions:
    """Hooks applied while installing a chart."""

    values_transformer: ValuesTransformer | None = None
    values_logger: ValuesLogger | None = None


@dataclass
class ProviderStatus:
    """Health of one installed provider."""

    name: str
    package: str = ""
    healthy: bool = False
    message: str = ""
    revision: str = ""


@dataclass
class PreloadResult:
    """What an image preload pass achieved."""

    loaded: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class ClusterProvider(Protocol):
    """Kind cluster lifecycle."""

    async def exists(self, name: str) -> bool: ...

    async def create(self, config: Config, on_step: MessageCallback) -> None:
        """Create the cluster, reporting each provisioning step."""
        ...

    async def delete(self, name: str) -> None: ...

    async def node_containers(self, name: str) -> list[str]: ...

    async def update_ca_certificates(self, name: str) -> None: ...


class KubeClient(Protocol):
    """The slice of the Kubernetes API the bootstrap needs."""

    async def ping(self) -> None:
        """Fail unless the API server answers."""
        ...

    async def list_pods(self, namespace: str, label_selector: str = "") -> list[dict[str, Any]]: ...

    async def pod_logs(self, namespace: str, pod: str, container: str, tail: int) -> list[str]: ...

    async def list_resources(self, resource: str, namespace: str = "") -> list[dict[str, Any]]: ...

    async def node_names(self) -> list[str]: ...

    async def ensure_namespace(self, name: str) -> None: ...

    async def apply(self, manifest: str) -> None: ...

    async def apply_file(self, path: Path) -> None: ...


class ChartInstaller(Protocol):
    """Helm-style chart installs."""

    async def install(self, chart: ChartConfig, options: InstallOptions | None = None) -> None: ...

    async def release_status(self, name: str, namespace: str) -> dict[str, Any] | None:
        """Release info as reported by the package manager, None if absent."""
        ...


class ControlPlaneInstaller(Protocol):
    """Crossplane core install."""

    async def install(self, on_step: StepCallback, options: InstallOptions | None = None) -> None: ...

    async def pod_readiness(self) -> Readiness: ...


class ProviderInstaller(Protocol):
    async def install_provider(self, name: str, package: str) -> None: ...

    async def get_status(self) -> list[ProviderStatus]: ...


class RegistryManager(Protocol):
    """Local image registry container."""

    @property
    def host(self) -> str: ...

    async def create(self) -> None: ...

    async def probe(self) -> Readiness:
        """Whether the registry API answers."""
        ...

    async def configure_nodes(self, nodes: list[str]) -> None: ...

    async def connect_to_network(self, network: str = "kind") -> None: ...

    async def publish_hosting(self, kube: KubeClient) -> None: ...

    async def remove(self) -> None: ...


class ImagePreloader(Protocol):
    async def preload(self, cluster_name: str, on_step: MessageCallback) -> PreloadResult: ...

    async def pull(self, images: list[str], on_step: MessageCallback) -> int: ...


class CompositionApplier(Protocol):
    async def apply(self, source: CompositionSource, kube: KubeClient) -> int:
        """Apply every manifest under the source; returns the number of files applied."""
        ...


class DiagnosticsSink(Protocol):
    """Renders diagnostics reports; the executor never prints them itself."""

    def report(self, report: DiagnosticsReport) -> None: ...

    def flush(self) -> None: ...


@dataclass
class Collaborators:
    """Everything the executor talks to, wired together once per run."""

    cluster: ClusterProvider
    kube: KubeClient
    charts: ChartInstaller
    control_plane: ControlPlaneInstaller
    providers: ProviderInstaller
    images: ImagePreloader
    compositions: CompositionApplier
    diagnostics: DiagnosticsSink
    registry: RegistryManager | None = None
