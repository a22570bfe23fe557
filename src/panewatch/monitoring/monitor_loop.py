"""
MonitorLoop - Background task that turns tmux panes into agent trees.

Each tick lists panes, filters sessions, identifies and classifies every pane
concurrently in worker threads, and publishes one AgentTree to the tree
channel. Failures are isolated: a failed listing skips the tick, a failed
capture or a slow pane only affects that pane.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace

from panewatch.config import MonitorConfig
from panewatch.detection.engine import StatusEngine
from panewatch.detection.models import (
    AgentTree,
    Idle,
    MonitoredAgent,
    PaneSnapshot,
    Processing,
    Unknown,
    is_active,
)
from panewatch.errors import ConfigurationError, PatternTimeout, TransientIoError
from panewatch.events import EventBus
from panewatch.monitoring.channel import BackpressurePolicy, TreeChannel
from panewatch.monitoring.session_filter import SessionFilter
from panewatch.profiles.matcher import AgentMatcher, LazyCapture
from panewatch.profiles.registry import ProfileRegistry
from panewatch.tmux_client import TmuxClient

logger = logging.getLogger(__name__)

SOURCE = "monitor"


@dataclass(frozen=True)
class DetectionSet:
    """A registry with the matcher and engine built for it.

    The loop swaps the whole set at once, so a tick never mixes profiles from
    two registries.
    """

    registry: ProfileRegistry
    matcher: AgentMatcher
    engine: StatusEngine

    @classmethod
    def build(cls, registry: ProfileRegistry, tail_chars: int) -> DetectionSet:
        return cls(
            registry=registry,
            matcher=AgentMatcher(registry, tail_chars),
            engine=StatusEngine(registry.glyphs, tail_chars),
        )


class MonitorLoop:
    """
    Background monitor for tmux agent panes.

    Args:
        client: tmux access used for listing and capturing panes.
        registry: Initial profile registry.
        config: Monitor settings; defaults apply when omitted.
        channel: Tree channel to publish to; built from config when omitted.
        event_bus: Bus for failure and lifecycle events.
        session_filter: Session filter; built from config when omitted.
    """

    def __init__(
        self,
        client: TmuxClient,
        registry: ProfileRegistry,
        config: MonitorConfig | None = None,
        channel: TreeChannel | None = None,
        event_bus: EventBus | None = None,
        session_filter: SessionFilter | None = None,
    ):
        self.client = client
        self.config = config or MonitorConfig()
        self.channel = channel or TreeChannel(
            capacity=self.config.channel_capacity,
            policy=BackpressurePolicy(self.config.backpressure),
            publish_timeout=self.config.publish_timeout_seconds,
        )
        self.event_bus = event_bus or EventBus()
        self.session_filter = session_filter or SessionFilter(
            self.config.ignore_sessions, show_detached=self.config.show_detached_sessions
        )

        self._detection = DetectionSet.build(registry, self.config.capture_buffer_chars)
        self._executor: concurrent.futures.ThreadPoolExecutor | None = None
        self._task: asyncio.Task | None = None
        self._running = False
        self._stop_event: asyncio.Event | None = None
        self._sequence = 0
        self._listing_failed = False

        self._inflight: dict[str, concurrent.futures.Future] = {}
        self._last_active: dict[str, float] = {}
        self._last_agents: dict[str, MonitoredAgent] = {}

    @property
    def registry(self) -> ProfileRegistry:
        return self._detection.registry

    @property
    def sequence(self) -> int:
        return self._sequence

    # ============================================================================
    # Lifecycle Methods
    # ============================================================================

    async def start(self) -> None:
        """
        Start the background task.

        Raises:
            RuntimeError: If the loop is already running
        """
        if self._running:
            raise RuntimeError("MonitorLoop is already running")

        self._ensure_executor()
        if self.config.ignore_self and self.session_filter.current_session is None:
            loop = asyncio.get_running_loop()
            self.session_filter.current_session = await loop.run_in_executor(
                self._executor, self.client.current_session
            )

        self._stop_event = asyncio.Event()
        self._running = True
        self._task = asyncio.create_task(self._monitoring_loop())

        logger.info(f"MonitorLoop started (poll interval: {self.config.poll_interval_seconds}s)")
        self.event_bus.emit("monitor.started", SOURCE, poll_interval=self.config.poll_interval_seconds)

    async def stop(self, timeout: float = 5.0) -> None:
        """
        Stop the loop.

        The sleep between ticks is interrupted immediately. A tick that is
        already running completes and publishes its tree before the task
        exits. If that takes longer than ``timeout`` the task is cancelled.
        """
        if not self._running:
            self._shutdown_executor()
            return

        logger.info("Stopping MonitorLoop...")
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()

        if self._task:
            try:
                await asyncio.wait_for(asyncio.shield(self._task), timeout=timeout)
            except TimeoutError:
                logger.warning("Monitor task did not stop within timeout; cancelling")
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    logger.info("Monitor task cancelled")

        self._shutdown_executor()
        logger.info("MonitorLoop stopped")
        self.event_bus.emit("monitor.stopped", SOURCE, sequence=self._sequence)

    def is_running(self) -> bool:
        return self._running and self._task is not None and not self._task.done()

    def _shutdown_executor(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def _ensure_executor(self) -> concurrent.futures.ThreadPoolExecutor:
        if self._executor is None:
            self._executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=self.config.max_workers, thread_name_prefix="panewatch"
            )
        return self._executor

    # ============================================================================
    # Profile Reload
    # ============================================================================

    def reload(self, registry: ProfileRegistry) -> None:
        """Swap in a new, already validated registry. Takes effect next tick."""
        self._detection = DetectionSet.build(registry, self.config.capture_buffer_chars)
        logger.info(f"Profile registry reloaded ({len(registry)} profiles)")
        self.event_bus.emit("profiles.reloaded", SOURCE, profiles=[p.id for p in registry])

    def reload_from(self, loader: Callable[[], ProfileRegistry]) -> bool:
        """Build a registry with ``loader`` and swap it in if it is valid.

        Returns:
            True if the new registry is active, False if it was rejected and
            the previous registry remains in use.
        """
        try:
            registry = loader()
        except ConfigurationError as e:
            logger.error(f"Profile reload rejected: {e}")
            self.event_bus.emit("profiles.reload_rejected", SOURCE, error=str(e))
            return False
        self.reload(registry)
        return True

    async def reload_async(self, loader: Callable[[], ProfileRegistry]) -> bool:
        """Run :meth:`reload_from` on a worker thread.

        Loading compiles and times every pattern, so it stays off the event
        loop that publishes trees.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.reload_from, loader)

    # ============================================================================
    # Core Monitoring Methods
    # ============================================================================

    async def _monitoring_loop(self) -> None:
        logger.info("Monitor loop started")
        interval = self.config.poll_interval_seconds

        while self._running:
            started = time.monotonic()
            try:
                tree = await self.poll_once()
                if tree is not None and not await self.channel.publish(tree):
                    self.event_bus.emit("monitor.tree_dropped", SOURCE, sequence=tree.sequence)
            except asyncio.CancelledError:
                logger.info("Monitor loop cancelled")
                break
            except Exception as e:
                logger.critical(f"Critical error in monitor loop: {e}", exc_info=True)

            delay = max(0.0, interval - (time.monotonic() - started))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except TimeoutError:
                pass

        logger.info("Monitor loop exited")

    async def poll_once(self) -> AgentTree | None:
        """
        Run a single tick and return its tree without publishing it.

        Returns:
            The assembled tree, or None if listing panes failed.
        """
        detection = self._detection
        executor = self._ensure_executor()
        loop = asyncio.get_running_loop()

        try:
            snapshots = await loop.run_in_executor(executor, self.client.list_panes)
        except TransientIoError as e:
            self._record_list_failure(e)
            return None
        self._record_list_success()

        snapshots = self.session_filter.apply(snapshots)
        agents = await asyncio.gather(*(self._process_pane(s, detection) for s in snapshots))

        now = time.monotonic()
        agents = [self._apply_hysteresis(agent, now) for agent in agents]
        agents.sort(key=lambda a: (a.session, a.window_index, a.pane_index))

        present = {a.unique_id for a in agents}
        self._last_agents = {a.unique_id: a for a in agents}
        self._last_active = {k: v for k, v in self._last_active.items() if k in present}
        self._inflight = {k: f for k, f in self._inflight.items() if not f.done()}

        self._sequence += 1
        tree = AgentTree(root_agents=tuple(agents), sequence=self._sequence)
        logger.debug(
            "Tick assembled",
            extra={"sequence": tree.sequence, "panes": len(tree), "agents": tree.total_count},
        )
        return tree

    def _record_list_failure(self, error: TransientIoError) -> None:
        if self._listing_failed:
            logger.debug(f"Pane listing still failing: {error}")
            return
        self._listing_failed = True
        logger.error(f"Pane listing failed: {error}")
        self.event_bus.emit("monitor.list_failed", SOURCE, error=str(error))

    def _record_list_success(self) -> None:
        if self._listing_failed:
            self._listing_failed = False
            logger.info("Pane listing recovered")
            self.event_bus.emit("monitor.list_recovered", SOURCE)

    def _unknown(self, snapshot: PaneSnapshot) -> MonitoredAgent:
        """Unknown status for a pane, keeping its last known profile."""
        previous = self._last_agents.get(snapshot.unique_id)
        if previous is not None:
            return replace(previous, status=Unknown())
        return MonitoredAgent.from_snapshot(
            snapshot, profile_id=None, display_name=snapshot.command, status=Unknown()
        )

    async def _process_pane(self, snapshot: PaneSnapshot, detection: DetectionSet) -> MonitoredAgent:
        """
        Identify and classify one pane within the time budget.

        A pane whose previous detection is still running in a worker thread is
        not resubmitted; it reads Unknown until that work finishes.
        """
        key = snapshot.unique_id
        previous = self._inflight.get(key)
        if previous is not None and not previous.done():
            logger.debug(f"Detection for {snapshot.target} still running; reporting Unknown")
            return self._unknown(snapshot)

        future = self._ensure_executor().submit(self._inspect, snapshot, detection)
        self._inflight[key] = future
        try:
            agent, capture_error = await self._await_detection(snapshot, future)
        except PatternTimeout as e:
            logger.warning(str(e))
            self.event_bus.emit("monitor.pane_timeout", SOURCE, target=snapshot.target, error=str(e))
            return self._unknown(snapshot)

        self._inflight.pop(key, None)
        if capture_error is not None:
            self.event_bus.emit("monitor.capture_failed", SOURCE, target=snapshot.target, error=capture_error)
        return agent

    async def _await_detection(
        self, snapshot: PaneSnapshot, future: concurrent.futures.Future
    ) -> tuple[MonitoredAgent, str | None]:
        """Wait for a worker-thread detection without cancelling it on timeout.

        Raises:
            PatternTimeout: If the work did not finish within match_timeout_seconds.
        """
        try:
            return await asyncio.wait_for(
                asyncio.shield(asyncio.wrap_future(future)),
                timeout=self.config.match_timeout_seconds,
            )
        except TimeoutError as e:
            raise PatternTimeout(
                f"Detection for {snapshot.target} exceeded {self.config.match_timeout_seconds}s"
            ) from e

    def _inspect(self, snapshot: PaneSnapshot, detection: DetectionSet) -> tuple[MonitoredAgent, str | None]:
        """Worker-thread half of pane processing. Never raises."""
        capture = LazyCapture(lambda: self.client.capture_pane(snapshot.target))
        try:
            result = detection.matcher.match(snapshot, capture)
            if not result.matched:
                agent = MonitoredAgent.from_snapshot(
                    snapshot, profile_id=None, display_name=snapshot.command, status=Unknown()
                )
                return agent, str(capture.error) if capture.error else None

            profile = result.profile
            text = capture.get()
            if text is None:
                agent = MonitoredAgent.from_snapshot(
                    snapshot, profile_id=profile.id, display_name=profile.display_name, status=Unknown()
                )
                return agent, str(capture.error)

            agent = MonitoredAgent.from_snapshot(
                snapshot,
                profile_id=profile.id,
                display_name=profile.display_name,
                status=detection.engine.detect(text, profile),
                subagents=detection.engine.subagents(text, profile),
                last_content=text,
            )
            return agent, None
        except Exception as e:
            logger.error(f"Error processing pane {snapshot.target}: {e}", exc_info=True)
            return self._unknown(snapshot), None

    def _apply_hysteresis(self, agent: MonitoredAgent, now: float) -> MonitoredAgent:
        """Hold a just-quiet agent at Processing for ``hysteresis_seconds``."""
        if not agent.is_agent:
            return agent
        if is_active(agent.status):
            self._last_active[agent.unique_id] = now
            return agent
        last = self._last_active.get(agent.unique_id)
        if (
            isinstance(agent.status, Idle)
            and last is not None
            and now - last < self.config.hysteresis_seconds
        ):
            return replace(agent, status=Processing("Working..."))
        return agent
