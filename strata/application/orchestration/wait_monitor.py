"""
Wait Monitor

Architectural Intent:
- Polls a remote resource until it reaches the terminal condition an
  operation expects, or until a timeout or cancellation fires
- Each poll is a suspension point; nothing else in the monitor blocks

Polling Strategy:
- First describe() is issued immediately
- Interval grows by backoff_factor after each poll, capped at max_interval
- Sleeps are clipped to the deadline so the timeout is never overshot
- A set cancel_event interrupts the current sleep
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from strata.domain.errors import ProvisioningTimeoutError, RemoteError
from strata.domain.ports.provisioning_port import ProvisioningPort
from strata.domain.value_objects.remote_status import RemoteState, RemoteStatus

logger = logging.getLogger(__name__)


class WaitTarget(Enum):
    READY = "ready"
    ABSENT = "absent"


@dataclass(frozen=True)
class WaitPolicy:
    poll_interval: float = 2.0
    timeout: float = 600.0
    max_interval: float = 30.0
    backoff_factor: float = 1.5

    def __post_init__(self) -> None:
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.max_interval < self.poll_interval:
            raise ValueError("max_interval cannot be smaller than poll_interval")
        if self.backoff_factor < 1.0:
            raise ValueError("backoff_factor must be >= 1.0")


class WaitMonitor:
    def __init__(self, policy: Optional[WaitPolicy] = None) -> None:
        self.policy = policy or WaitPolicy()

    async def wait(
        self,
        adapter: ProvisioningPort,
        remote_id: str,
        target: WaitTarget,
        cancel_event: Optional[asyncio.Event] = None,
        policy: Optional[WaitPolicy] = None,
    ) -> RemoteStatus:
        policy = policy or self.policy
        loop = asyncio.get_running_loop()
        deadline = loop.time() + policy.timeout
        interval = policy.poll_interval
        polls = 0

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise asyncio.CancelledError()

            status = await adapter.describe(remote_id)
            polls += 1
            logger.debug(
                "describe %s (%s) poll %d -> %s",
                remote_id, adapter.kind, polls, status.state.value,
            )

            if self._reached(status, target):
                logger.info(
                    "%s reached %s after %d poll(s)", remote_id, target.value, polls
                )
                return status
            if status.state == RemoteState.FAILED:
                raise RemoteError(remote_id, status.message or "remote operation failed")
            if target == WaitTarget.READY and status.state == RemoteState.ABSENT:
                raise RemoteError(remote_id, status.message or "resource disappeared")

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ProvisioningTimeoutError(remote_id, policy.timeout, status.state.value)

            await self._sleep(min(interval, remaining), cancel_event)
            interval = min(interval * policy.backoff_factor, policy.max_interval)

    @staticmethod
    def _reached(status: RemoteStatus, target: WaitTarget) -> bool:
        if target == WaitTarget.READY:
            return status.state == RemoteState.READY
        return status.state == RemoteState.ABSENT

    @staticmethod
    async def _sleep(delay: float, cancel_event: Optional[asyncio.Event]) -> None:
        if cancel_event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        raise asyncio.CancelledError()
