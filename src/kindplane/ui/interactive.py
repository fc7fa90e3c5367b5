"""Interactive progress renderer.

Runs the dashboard loop on the same event loop as the bootstrap worker.
Progress events, key presses, clock ticks and animation frames are merged
into one inbox and applied to the DashboardModel one message at a time;
the runner only carries out the Effects the model asks for.
"""

from __future__ import annotations

import asyncio

from rich.console import Console
from rich.live import Live

from ..bootstrap.events import RunCompleted, TimeoutExtended
from ..bootstrap.progress import ProgressChannel
from ..bootstrap.state import ExecutionState
from ..shared.logging import get_logger
from .dashboard import DashboardMessage, DashboardModel, Effect, Frame, Interrupted, KeyPress, Tick
from .keys import TerminalKeys
from .outcome import RunOutcome, abandoned_event
from .view import render_dashboard

logger = get_logger(__name__)


class InteractiveRenderer:
    """Live dashboard fed from a ProgressChannel."""

    def __init__(
        self,
        model: DashboardModel,
        channel: ProgressChannel,
        console: Console | None = None,
        keys: TerminalKeys | None = None,
        tick_interval: float = 1.0,
        frame_interval: float = 0.125,
    ):
        """Initialize the renderer.

        Args:
            model: Dashboard state, owned by this renderer from here on.
            channel: Channel the worker emits into.
            console: Console to draw on.
            keys: Key source; None disables keyboard control.
            tick_interval: Seconds between countdown ticks.
            frame_interval: Seconds between spinner frames.
        """
        self.model = model
        self.channel = channel
        self.console = console or Console()
        self.keys = keys
        self.tick_interval = tick_interval
        self.frame_interval = frame_interval

    async def run(self, worker: asyncio.Task, state: ExecutionState) -> RunOutcome:
        """Drive the dashboard until the run completes or the operator quits."""
        inbox: asyncio.Queue[DashboardMessage] = asyncio.Queue()
        self.model.deadline = state.deadline_at()
        self.model.update(Tick(state.remaining(), state.elapsed()))

        feeders = [
            asyncio.create_task(self._pump_events(inbox)),
            asyncio.create_task(self._tick(inbox, state)),
            asyncio.create_task(self._animate(inbox)),
            asyncio.create_task(self._watch_interrupt(inbox, state)),
        ]
        keys_started = False
        if self.keys is not None:
            keys_started = self.keys.start(lambda key: inbox.put_nowait(KeyPress(key)))

        try:
            with Live(
                render_dashboard(self.model),
                console=self.console,
                auto_refresh=False,
                transient=False,
            ) as live:
                while True:
                    message = await inbox.get()
                    effect = self.model.update(message)
                    effect = self._apply(effect, state)
                    if effect.redraw or effect.quit:
                        live.update(render_dashboard(self.model), refresh=True)
                    if effect.quit:
                        break
        finally:
            if keys_started:
                self.keys.stop()
            for task in feeders:
                task.cancel()
            await asyncio.gather(*feeders, return_exceptions=True)

        return self.model.outcome

    def _apply(self, effect: Effect, state: ExecutionState) -> Effect:
        if effect.cancel is not None and state.cancel(effect.cancel):
            logger.info("Run cancelled from dashboard", reason=effect.cancel.value)
        if effect.extend:
            if not state.extend():
                return Effect()
            self.model.update(TimeoutExtended(state.deadline_at()))
            self.model.update(Tick(state.remaining(), state.elapsed()))
            logger.info("Run deadline extended", remaining=state.remaining())
            return Effect(redraw=True)
        return effect

    async def _pump_events(self, inbox: asyncio.Queue[DashboardMessage]) -> None:
        completed = False
        while (event := await self.channel.receive()) is not None:
            completed = completed or isinstance(event, RunCompleted)
            inbox.put_nowait(event)
        if not completed:
            inbox.put_nowait(abandoned_event())

    async def _tick(self, inbox: asyncio.Queue[DashboardMessage], state: ExecutionState) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            inbox.put_nowait(Tick(state.remaining(), state.elapsed()))

    async def _animate(self, inbox: asyncio.Queue[DashboardMessage]) -> None:
        while True:
            await asyncio.sleep(self.frame_interval)
            inbox.put_nowait(Frame())

    async def _watch_interrupt(
        self, inbox: asyncio.Queue[DashboardMessage], state: ExecutionState
    ) -> None:
        await state.wait()
        inbox.put_nowait(Interrupted())
