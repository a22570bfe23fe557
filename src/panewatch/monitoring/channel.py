"""Bounded channel carrying agent trees from the monitor loop to a consumer."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from panewatch.detection.models import AgentTree

logger = logging.getLogger(__name__)


class BackpressurePolicy(str, Enum):
    """What publish does when the channel is full.

    Attributes:
        DROP: Discard the new tree immediately; the next tick supersedes it.
        BLOCK: Wait up to the publish timeout for room, then discard.
    """

    DROP = "drop"
    BLOCK = "block"


class TreeChannel:
    """Single-producer, single-consumer channel of AgentTree values.

    Trees are delivered whole or not at all. The consumer never sees a tree
    older than one it already received: stale trees are skipped on receive.

    Args:
        capacity: Maximum trees buffered (default: 1).
        policy: Back-pressure policy when full.
        publish_timeout: Seconds publish may wait under BLOCK.
    """

    def __init__(
        self,
        capacity: int = 1,
        policy: BackpressurePolicy = BackpressurePolicy.DROP,
        publish_timeout: float = 0.25,
    ):
        self._queue: asyncio.Queue[AgentTree] = asyncio.Queue(maxsize=capacity)
        self.policy = BackpressurePolicy(policy)
        self.publish_timeout = publish_timeout
        self._last_delivered = -1
        self._current: AgentTree | None = None
        self.dropped = 0

    @property
    def current(self) -> AgentTree | None:
        """The most recent tree handed to the consumer, if any."""
        return self._current

    async def publish(self, tree: AgentTree) -> bool:
        """Offer a tree to the consumer.

        Returns:
            True if the tree was queued, False if it was dropped.
        """
        if self.policy is BackpressurePolicy.BLOCK:
            try:
                await asyncio.wait_for(self._queue.put(tree), timeout=self.publish_timeout)
                return True
            except TimeoutError:
                pass
        else:
            try:
                self._queue.put_nowait(tree)
                return True
            except asyncio.QueueFull:
                pass

        self.dropped += 1
        logger.debug(f"Dropped tree {tree.sequence}; consumer is behind ({self.dropped} dropped)")
        return False

    def _accept(self, tree: AgentTree) -> bool:
        if tree.sequence <= self._last_delivered:
            return False
        self._last_delivered = tree.sequence
        self._current = tree
        return True

    def latest(self) -> AgentTree | None:
        """Drain the queue without waiting and return the newest tree.

        Returns the current tree when nothing newer is queued, or None when
        no tree has been published yet.
        """
        while True:
            try:
                tree = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return self._current
            self._accept(tree)

    async def receive(self) -> AgentTree:
        """Wait for a tree newer than the last one delivered, then coalesce."""
        while True:
            tree = await self._queue.get()
            if self._accept(tree):
                newest = self.latest()
                return newest if newest is not None else tree
