"""Bootstrap executor: drives the ordered phase sequence.

The executor runs inside the worker task. It reports progress only through
a ProgressSink, observes the ExecutionState at every wait, and on a stage
failure collects diagnostics, optionally rolls back a cluster it created,
and raises StageFailed.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, NoReturn

import yaml

from ..cluster.kind import node_image, validate_trusted_cas
from ..compat import (
    CHECKPOINT_FINAL,
    CHECKPOINT_POST_CONTROL_PLANE,
    CHECKPOINT_POST_DEPENDENCY_INSTALL,
    CHECKPOINT_PRE_CONTROL_PLANE,
    CHECKPOINTS,
)
from ..config import Config
from ..diagnostics import Component, DiagnosticsCollector, DiagnosticsContext, default_context
from ..errors import BootstrapCancelled, KindplaneError, StageFailed
from ..images import has_images_to_preload
from ..shared.logging import get_logger
from .events import INDETERMINATE, PodSummary
from .interfaces import Collaborators, InstallOptions, ProviderStatus
from .phases import PhaseTracker
from .poller import Readiness, ReadinessPoller
from .progress import ProgressSink
from .state import DEFAULT_EXTEND_SECONDS, DEFAULT_TIMEOUT_SECONDS, ExecutionState

logger = get_logger(__name__)

# ── Phase names ──

PHASE_REGISTRY = "Create local registry"
PHASE_TRUSTED_CAS = "Configure trusted CAs"
PHASE_CLUSTER = "Create Kind cluster"
PHASE_IMAGES = "Pre-load images"
PHASE_CONNECT = "Connect to cluster"
PHASE_CROSSPLANE = "Install Crossplane"
PHASE_PROVIDERS = "Install providers"
PHASE_COMPOSITIONS = "Apply compositions"

PHASE_CHARTS = {checkpoint: f"Install {checkpoint} charts" for checkpoint in CHECKPOINTS}


@dataclass
class BootstrapOptions:
    """Per-run switches, usually from the ``up`` command line."""

    timeout: float | None = DEFAULT_TIMEOUT_SECONDS
    extend_increment: float = DEFAULT_EXTEND_SECONDS
    rollback_on_failure: bool = False
    skip_crossplane: bool = False
    skip_providers: bool = False
    skip_charts: bool = False
    skip_compositions: bool = False
    next_step_hint: str | None = None
    show_values: bool = False
    pull_missing_images: bool = False


def build_phase_plan(
    config: Config, options: BootstrapOptions, tracker: PhaseTracker | None = None
) -> PhaseTracker:
    """Add the phases this run will go through, in execution order.

    Args:
        config: Resolved configuration.
        options: Skip flags.
        tracker: Tracker to populate; a new one when omitted.

    Returns:
        The populated tracker.
    """
    tracker = tracker or PhaseTracker()
    crossplane = config.crossplane

    def charts(checkpoint: str) -> None:
        tracker.add_phase_if(
            not options.skip_charts and bool(config.charts_for(checkpoint)),
            PHASE_CHARTS[checkpoint],
        )

    tracker.add_phase_if(config.cluster.registry.enabled, PHASE_REGISTRY)
    tracker.add_phase_if(config.cluster.trusted_cas.configured, PHASE_TRUSTED_CAS)
    tracker.add_phase(PHASE_CLUSTER)
    tracker.add_phase_if(
        not options.skip_crossplane
        and crossplane.image_cache.enabled
        and has_images_to_preload(config),
        PHASE_IMAGES,
    )
    tracker.add_phase(PHASE_CONNECT)
    charts(CHECKPOINT_PRE_CONTROL_PLANE)
    tracker.add_phase_if(not options.skip_crossplane, PHASE_CROSSPLANE)
    charts(CHECKPOINT_POST_CONTROL_PLANE)
    tracker.add_phase_if(
        not options.skip_crossplane and not options.skip_providers and bool(crossplane.providers),
        PHASE_PROVIDERS,
    )
    charts(CHECKPOINT_POST_DEPENDENCY_INSTALL)
    charts(CHECKPOINT_FINAL)
    tracker.add_phase_if(
        not options.skip_compositions and bool(config.compositions), PHASE_COMPOSITIONS
    )
    return tracker


def default_next_step(config: Config) -> str:
    return f"kubectl cluster-info --context {config.cluster.context_name}"


def pod_summary_ready(pod: PodSummary) -> bool:
    ready, _, total = pod.ready.partition("/")
    return pod.phase == "Running" and ready == total and total not in ("", "0")


def provider_rows(statuses: list[ProviderStatus]) -> tuple[PodSummary, ...]:
    """Show providers in the pods panel: Running, Installing or Pending."""
    rows = []
    for status in statuses:
        if status.healthy:
            phase, ready = "Running", "1/1"
        elif status.message:
            phase, ready = "Installing", "0/1"
        else:
            phase, ready = "Pending", "0/1"
        rows.append(PodSummary(name=status.name, namespace="provider", phase=phase, ready=ready))
    return tuple(rows)


class BootstrapExecutor:
    """Runs the planned phases against the collaborators."""

    def __init__(
        self,
        config: Config,
        options: BootstrapOptions,
        collaborators: Collaborators,
        sink: ProgressSink,
        state: ExecutionState,
        phases: tuple[str, ...],
        poller: ReadinessPoller | None = None,
        collector: DiagnosticsCollector | None = None,
    ):
        """Initialize bootstrap executor.

        Args:
            config: Resolved configuration.
            options: Run options.
            collaborators: Cluster, kube, chart and other adapters.
            sink: Where progress events go.
            state: Cancellation scope and deadline for this run.
            phases: Names of the planned phases, in order.
            poller: Readiness poller for pods, providers and the registry.
            collector: Diagnostics collector; built from the kube and chart
                collaborators when omitted.
        """
        self.config = config
        self.options = options
        self.collab = collaborators
        self.sink = sink
        self.state = state
        self.phases = phases
        self.poller = poller or ReadinessPoller()
        self.collector = collector or DiagnosticsCollector(collaborators.kube, collaborators.charts)
        self.cluster_created = False
        self._diagnostics: DiagnosticsContext | None = None

    @property
    def cluster_name(self) -> str:
        return self.config.cluster.name

    @property
    def next_step_hint(self) -> str:
        return self.options.next_step_hint or default_next_step(self.config)

    async def run(self) -> None:
        """Run every planned phase in order.

        Raises:
            BootstrapCancelled: The execution state was cancelled.
            StageFailed: A phase failed; diagnostics were already reported.
        """
        await self._run_phase(PHASE_REGISTRY, self._create_registry, Component.REGISTRY)
        await self._run_phase(PHASE_TRUSTED_CAS, self._configure_trusted_cas, Component.CLUSTER)
        await self._cluster_phase()
        await self._run_phase(PHASE_IMAGES, self._preload_images, Component.CLUSTER)
        await self._run_phase(PHASE_CONNECT, self._connect, Component.CLUSTER)
        await self._charts_phase(CHECKPOINT_PRE_CONTROL_PLANE)
        await self._run_phase(PHASE_CROSSPLANE, self._install_crossplane, Component.CROSSPLANE)
        await self._charts_phase(CHECKPOINT_POST_CONTROL_PLANE)
        await self._run_phase(PHASE_PROVIDERS, self._install_providers, Component.PROVIDERS)
        await self._charts_phase(CHECKPOINT_POST_DEPENDENCY_INSTALL)
        await self._charts_phase(CHECKPOINT_FINAL)
        await self._run_phase(PHASE_COMPOSITIONS, self._apply_compositions, Component.COMPOSITIONS)

    # ── Phase driver ──

    async def _run_phase(
        self,
        name: str,
        body: Callable[[], Awaitable[str]],
        component: Component,
    ) -> None:
        """Start a planned phase, run its body and complete or fail it."""
        if name not in self.phases:
            return
        self.state.raise_if_cancelled()
        self._diagnostics = default_context(component)
        await self.sink.phase_started(name)
        logger.info("Phase started", phase=name)
        try:
            message = await body()
        except BootstrapCancelled:
            logger.info("Phase interrupted", phase=name)
            raise
        except Exception as e:
            await self._fail(name, e)
        await self.sink.phase_completed(name, message)
        logger.info("Phase complete", phase=name, message=message)

    async def _fail(self, name: str, error: Exception) -> NoReturn:
        """Report a failed phase and raise StageFailed.

        The original error always propagates, even when diagnostics or
        rollback themselves go wrong.
        """
        logger.error("Phase failed", phase=name, error=str(error))
        await self.sink.phase_failed(name, error)

        ctx = self._diagnostics or default_context(Component.CLUSTER)
        try:
            report = await self.state.guard(self.collector.collect(ctx))
        except BootstrapCancelled:
            logger.warning("Diagnostics interrupted", phase=name)
            report = None
        if report is not None and not report.is_empty:
            try:
                self.collab.diagnostics.report(report)
            except Exception as e:
                logger.warning("Diagnostics sink failed", error=str(e))

        if self.options.rollback_on_failure and self.cluster_created:
            await self._rollback()

        raise StageFailed(
            f"phase '{name}' failed: {error}",
            phase=name,
            component=ctx.component.value,
            cause=error,
        ) from error

    async def _rollback(self) -> None:
        await self.sink.log("Rolling back: deleting cluster...")
        try:
            await self.collab.cluster.delete(self.cluster_name)
        except Exception as e:
            logger.warning("Rollback failed", cluster=self.cluster_name, error=str(e))
            await self.sink.log(f"Failed to delete cluster: {e}")
            return
        self.cluster_created = False
        await self.sink.log("Cluster deleted")

    async def _step(self, step: str, progress: float = INDETERMINATE) -> None:
        await self.sink.operation(step, progress)

    async def _message(self, step: str) -> None:
        await self.sink.operation(step)

    def _install_options(self) -> InstallOptions:
        if not self.options.show_values:
            return InstallOptions()
        return InstallOptions(values_logger=self._log_values)

    async def _log_values(self, release: str, values: dict[str, Any]) -> None:
        await self.sink.log(f"Merged values for {release}:")
        for line in yaml.safe_dump(values, sort_keys=False).splitlines():
            await self.sink.log(f"  {line}")

    # ── Registry and cluster ──

    async def _create_registry(self) -> str:
        registry = self.collab.registry
        if registry is None:
            raise KindplaneError("local registry is enabled but no registry manager is configured")
        await self._step("Starting registry container...")
        await self.state.guard(registry.create())

        await self._step(f"Waiting for registry at {registry.host}...")
        await self.poller.wait_until_ready(registry.probe, self.state)
        return f"Registry available at {registry.host}"

    async def _configure_trusted_cas(self) -> str:
        await self._step("Validating CA certificate files...")
        summary = validate_trusted_cas(self.config)
        return f"{summary.registry_count} registry CA(s), {summary.workload_count} workload CA(s)"

    async def _cluster_phase(self) -> None:
        if PHASE_CLUSTER not in self.phases:
            return
        try:
            exists = await self.state.guard(self.collab.cluster.exists(self.cluster_name))
        except BootstrapCancelled:
            raise
        except Exception as e:
            await self._run_phase(PHASE_CLUSTER, self._raise(e), Component.CLUSTER)
            return

        if exists:
            await self.sink.phase_skipped(PHASE_CLUSTER, "already exists")
            logger.info("Cluster already exists", cluster=self.cluster_name)
            return
        await self._run_phase(PHASE_CLUSTER, self._create_cluster, Component.CLUSTER)

    @staticmethod
    def _raise(error: Exception) -> Callable[[], Awaitable[str]]:
        async def body() -> str:
            raise error

        return body

    async def _create_cluster(self) -> str:
        image, source = node_image(self.config)
        if image:
            await self.sink.log(f"Node Image: {image} ({source})")
        else:
            await self.sink.log(f"Node Image: Kind default ({source})")

        await self.state.guard(self.collab.cluster.create(self.config, self._message))
        self.cluster_created = True

        if self.config.cluster.trusted_cas.workloads:
            await self._step("Updating system CA certificates on nodes...")
            await self.state.guard(self.collab.cluster.update_ca_certificates(self.cluster_name))

        registry = self.collab.registry
        if self.config.cluster.registry.enabled and registry is not None:
            await self._step("Configuring nodes for local registry...")
            nodes = await self.state.guard(self.collab.cluster.node_containers(self.cluster_name))
            await self.state.guard(registry.configure_nodes(nodes))
            await self._step("Connecting registry to kind network...")
            await self.state.guard(registry.connect_to_network("kind"))

        return f"Cluster '{self.cluster_name}' created"

    async def _preload_images(self) -> str:
        images = self.collab.images
        try:
            result = await self.state.guard(images.preload(self.cluster_name, self._message))
            if not result.loaded and result.missing and self.options.pull_missing_images:
                pulled = await self.state.guard(images.pull(result.missing, self._message))
                await self.sink.log(f"Pulled {pulled}/{len(result.missing)} missing image(s)")
                result = await self.state.guard(images.preload(self.cluster_name, self._message))
        except BootstrapCancelled:
            raise
        except Exception as e:
            logger.warning("Image preload failed", error=str(e))
            await self.sink.log(f"Warning: Image pre-loading encountered issues: {e}")
            return "skipped after errors"

        if result.failed:
            await self.sink.log(
                f"Warning: Image pre-loading encountered issues: {len(result.failed)} image(s) failed"
            )
        if result.missing:
            await self.sink.log(f"{len(result.missing)} image(s) not cached locally; nodes will pull them")
        return f"{len(result.loaded)} image(s) loaded"

    async def _connect(self) -> str:
        context = self.config.cluster.context_name
        await self._step(f"Connecting to {context}...")

        async def probe() -> Readiness:
            await self.collab.kube.ping()
            return Readiness(snapshot=context, all_ready=True)

        await self.poller.wait_until_ready(probe, self.state)

        registry = self.collab.registry
        if self.config.cluster.registry.enabled and registry is not None:
            try:
                await self.state.guard(registry.publish_hosting(self.collab.kube))
            except BootstrapCancelled:
                raise
            except Exception as e:
                logger.warning("Registry hosting ConfigMap not published", error=str(e))
                await self.sink.log(f"Warning: failed to publish local registry hosting: {e}")
        return f"Connected to {context}"

    # ── Crossplane ──

    async def _install_crossplane(self) -> str:
        control_plane = self.collab.control_plane
        self._diagnostics = DiagnosticsContext(
            component=Component.HELM,
            namespace=self.config.crossplane.namespace,
            release_name="crossplane",
        )
        await self.state.guard(control_plane.install(self._step, self._install_options()))

        self._diagnostics = default_context(Component.CROSSPLANE)
        self._diagnostics.namespace = self.config.crossplane.namespace

        async def probe() -> Readiness:
            readiness = await control_plane.pod_readiness()
            pods = tuple(readiness.snapshot or ())
            await self.sink.pods(pods)
            if not pods:
                await self._step("Waiting for Crossplane pods...")
            elif not readiness.all_ready:
                waiting = next((p for p in pods if not pod_summary_ready(p)), pods[0])
                await self._step(f"Waiting for {waiting.name} ({waiting.phase})")
            return readiness

        result = await self.poller.wait_until_ready(probe, self.state)
        version = self.config.crossplane.version
        count = len(result.snapshot or ())
        return f"Crossplane {version} ready ({count} pod(s))" if version else f"Crossplane ready ({count} pod(s))"

    async def _install_providers(self) -> str:
        providers = self.config.crossplane.providers
        installer = self.collab.providers
        self._diagnostics = default_context(Component.PROVIDERS)
        self._diagnostics.namespace = self.config.crossplane.namespace

        for i, provider in enumerate(providers):
            await self._step(f"Installing {provider.name}...", i / len(providers))
            await self.state.guard(installer.install_provider(provider.name, provider.package))

        await self._step("Waiting for providers to be healthy...")
        wanted = {p.name for p in providers}

        async def probe() -> Readiness:
            statuses = [s for s in await installer.get_status() if s.name in wanted]
            await self.sink.pods(provider_rows(statuses))
            healthy = {s.name for s in statuses if s.healthy}
            pending = [p.name for p in providers if p.name not in healthy]
            if pending:
                await self._step(f"Waiting for {pending[0]}...")
            return Readiness(snapshot=statuses, all_ready=not pending)

        await self.poller.wait_until_ready(probe, self.state)
        return f"{len(providers)} provider(s) healthy"

    # ── Charts and compositions ──

    async def _charts_phase(self, checkpoint: str) -> None:
        async def body() -> str:
            return await self._install_charts(checkpoint)

        await self._run_phase(PHASE_CHARTS[checkpoint], body, Component.HELM)

    async def _install_charts(self, checkpoint: str) -> str:
        charts = self.config.charts_for(checkpoint)
        for i, chart in enumerate(charts):
            self._diagnostics = DiagnosticsContext(
                component=Component.HELM, namespace=chart.namespace, release_name=chart.name
            )
            await self._step(f"Installing {chart.name}...", i / len(charts))
            await self.state.guard(self.collab.charts.install(chart, self._install_options()))
        return f"{len(charts)} chart(s) installed"

    async def _apply_compositions(self) -> str:
        sources = self.config.compositions
        for i, source in enumerate(sources):
            where = source.describe()
            await self._step(f"Applying {where}...", i / len(sources))
            try:
                await self.state.guard(self.collab.compositions.apply(source, self.collab.kube))
            except BootstrapCancelled:
                raise
            except Exception as e:
                raise KindplaneError(f"failed to apply compositions from {where}: {e}") from e
        return f"{len(sources)} source(s) applied"
