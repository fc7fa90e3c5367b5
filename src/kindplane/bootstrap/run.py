"""Library entry point for a bootstrap run.

``run_bootstrap`` plans the phases, starts one worker task running the
executor and lets a renderer consume its events on the same event loop.
Once the renderer returns, the worker is cancelled if still running,
drained and awaited within a grace period.
"""

from __future__ import annotations

import asyncio
import sys

from rich.console import Console

from ..config import Config
from ..diagnostics import ConsoleDiagnosticsSink
from ..errors import BootstrapCancelled, StageFailed
from ..shared.logging import get_logger
from ..ui.dashboard import DashboardModel
from ..ui.interactive import InteractiveRenderer
from ..ui.keys import TerminalKeys
from ..ui.outcome import (
    CANCELLED_MESSAGE,
    FAILED_MESSAGE,
    SUCCESS_MESSAGE,
    RunOutcome,
    timed_out_event,
)
from ..ui.plain import PlainRenderer
from .events import RunCompleted
from .executor import BootstrapExecutor, BootstrapOptions, build_phase_plan
from .interfaces import Collaborators, DiagnosticsSink
from .phases import PhaseTracker
from .progress import ChannelSink, DirectSink, ProgressChannel, ProgressSink
from .state import CancelReason, ExecutionState

logger = get_logger(__name__)

# How long the worker gets to unwind after the renderer returns
SHUTDOWN_GRACE_SECONDS = 5.0


def build_collaborators(config: Config, diagnostics: DiagnosticsSink) -> Collaborators:
    """Wire the CLI-backed adapters for one run.

    Nothing here touches the cluster; the first API call happens in the
    connect phase.
    """
    from ..cluster import KindClusterProvider, KubectlClient
    from ..compositions import GitCompositionApplier
    from ..crossplane import CrossplaneInstaller, CrossplaneProviderInstaller
    from ..helm import HelmChartInstaller
    from ..images import DockerImagePreloader
    from ..registry import LocalRegistry

    context = config.cluster.context_name
    kube = KubectlClient(context)
    charts = HelmChartInstaller(context)
    registry = LocalRegistry(config.cluster.registry) if config.cluster.registry.enabled else None

    return Collaborators(
        cluster=KindClusterProvider(),
        kube=kube,
        charts=charts,
        control_plane=CrossplaneInstaller(
            config.crossplane, kube, charts, config.cluster.trusted_cas.workloads
        ),
        providers=CrossplaneProviderInstaller(kube),
        images=DockerImagePreloader(config, registry_host=registry.host if registry else None),
        compositions=GitCompositionApplier(),
        diagnostics=diagnostics,
        registry=registry,
    )


async def run_worker(
    executor: BootstrapExecutor, sink: ProgressSink, state: ExecutionState
) -> RunCompleted:
    """Run the executor and report exactly one RunCompleted.

    The sink is closed on every path, so a channel-fed renderer always
    sees the end of the stream.
    """
    try:
        await executor.run()
        result = RunCompleted(
            success=True, message=SUCCESS_MESSAGE, next_step_hint=executor.next_step_hint
        )
    except BootstrapCancelled as e:
        if state.reason == CancelReason.TIMEOUT:
            result = timed_out_event(state.elapsed())
        else:
            result = RunCompleted(
                success=False, message=CANCELLED_MESSAGE, error=str(e), cancelled=True
            )
    except StageFailed as e:
        result = RunCompleted(
            success=False,
            message=f"Phase '{e.phase}' failed",
            error=str(e.cause) if e.cause is not None else str(e),
        )
    except Exception as e:
        logger.exception("Bootstrap worker crashed")
        result = RunCompleted(success=False, message=FAILED_MESSAGE, error=str(e))

    try:
        await sink.emit(result)
    finally:
        await sink.close()
    logger.info("Bootstrap finished", success=result.success, message=result.message)
    return result


async def _shutdown(
    worker: asyncio.Task, state: ExecutionState, channel: ProgressChannel | None
) -> None:
    state.cancel(CancelReason.USER)
    if channel is not None:
        # unblock a worker waiting on a full channel
        channel.drain()

    done, _ = await asyncio.wait({worker}, timeout=SHUTDOWN_GRACE_SECONDS)
    if worker not in done:
        logger.warning("Worker did not stop in time; cancelling task")
        worker.cancel()
        await asyncio.gather(worker, return_exceptions=True)
    elif not worker.cancelled() and worker.exception() is not None:
        logger.error("Bootstrap worker failed", error=str(worker.exception()))


async def run_bootstrap(
    config: Config,
    options: BootstrapOptions | None = None,
    *,
    parent: ExecutionState | None = None,
    interactive: bool | None = None,
    console: Console | None = None,
    collaborators: Collaborators | None = None,
) -> RunOutcome:
    """Bootstrap a cluster from a resolved config.

    Args:
        config: Resolved configuration.
        options: Run options; defaults when omitted.
        parent: Scope whose cancellation (e.g. a signal handler) stops the run.
        interactive: Live dashboard or plain output; defaults to whether
            stdout is a terminal.
        console: Console to render on.
        collaborators: Adapters to use; the CLI-backed ones when omitted.

    Returns:
        RunOutcome derived from the run's terminal event.
    """
    options = options or BootstrapOptions()
    console = console or Console()
    if interactive is None:
        interactive = console.is_terminal and sys.stdin.isatty()

    if collaborators is None:
        collaborators = build_collaborators(
            config, ConsoleDiagnosticsSink(console, defer=interactive)
        )

    tracker = build_phase_plan(config, options, PhaseTracker(console=console))
    state = ExecutionState(
        parent=parent, timeout=options.timeout, extend_increment=options.extend_increment
    )
    logger.info("Bootstrap starting", cluster=config.cluster.name, phases=len(tracker.phases))

    channel: ProgressChannel | None = None
    if interactive:
        channel = ProgressChannel()
        sink: ProgressSink = ChannelSink(channel, state)
        model = DashboardModel(
            tracker=tracker,
            cluster_name=config.cluster.name,
            config_source=config.source,
            extend_increment=options.extend_increment,
        )
        renderer = InteractiveRenderer(model, channel, console, keys=TerminalKeys())
    else:
        renderer = PlainRenderer(tracker, console, config.cluster.name, config.source)
        sink = DirectSink(renderer.handle)

    executor = BootstrapExecutor(config, options, collaborators, sink, state, tracker.names())
    worker = asyncio.create_task(run_worker(executor, sink, state))
    try:
        outcome = await renderer.run(worker, state)
    finally:
        await _shutdown(worker, state, channel)
        collaborators.diagnostics.flush()

    logger.info("Bootstrap outcome", status=outcome.status.value)
    return outcome
