"""Per-campaign state: unit registry, result log and cancellation flag."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from common.models.campaign import CampaignState, TestStepResult
from common.models.worker import UnitRole, WorkerUnit
from common.utils import generate_campaign_id

logger = logging.getLogger(__name__)


class CampaignContext:
    """Everything a running campaign owns.

    Passed explicitly to the driver and to the signal handler, which only
    calls :meth:`cancel`. The registry is append-only apart from each
    unit being completed once with its address.
    """

    def __init__(self, campaign_id: Optional[str] = None):
        self.campaign_id = campaign_id or generate_campaign_id()
        self.state = CampaignState.PLANNING
        self.error_message: Optional[str] = None
        self._units: dict[str, WorkerUnit] = {}
        self._results: list[TestStepResult] = []
        self._destroyed: set[str] = set()
        self._cancel_event = asyncio.Event()
        self.cancel_reason: Optional[str] = None

    # ==================== Cancellation ====================

    def cancel(self, reason: str = "interrupted") -> None:
        """Request the campaign to stop at the next checkpoint."""
        if not self._cancel_event.is_set():
            logger.warning(f"Campaign {self.campaign_id} cancellation requested: {reason}")
            self.cancel_reason = reason
            self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def cancel_event(self) -> asyncio.Event:
        return self._cancel_event

    async def sleep(self, seconds: float) -> bool:
        """Sleep unless cancelled first. Returns True when cancelled."""
        if seconds <= 0:
            return self.cancelled
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    # ==================== Unit registry ====================

    def register(self, unit: WorkerUnit) -> None:
        if unit.id in self._units:
            raise ValueError(f"Unit {unit.id} is already registered")
        self._units[unit.id] = unit

    def mark_ready(self, unit_id: str, address: str) -> WorkerUnit:
        unit = self._units[unit_id].with_address(address)
        self._units[unit_id] = unit
        return unit

    def mark_destroyed(self, unit_id: str) -> None:
        self._destroyed.add(unit_id)

    def is_destroyed(self, unit_id: str) -> bool:
        return unit_id in self._destroyed

    @property
    def units(self) -> list[WorkerUnit]:
        """Registry snapshot in registration order, hub included."""
        return list(self._units.values())

    @property
    def hub(self) -> Optional[WorkerUnit]:
        for unit in self._units.values():
            if unit.role == UnitRole.HUB:
                return unit
        return None

    @property
    def nodes(self) -> list[WorkerUnit]:
        return [u for u in self._units.values() if u.role == UnitRole.NODE]

    @property
    def ready_node_count(self) -> int:
        return sum(1 for u in self.nodes if u.is_ready)

    # ==================== Result log ====================

    def record(self, result: TestStepResult) -> None:
        if self._results and result.requested_load <= self._results[-1].requested_load:
            raise ValueError(
                f"Load {result.requested_load} does not increase on "
                f"{self._results[-1].requested_load}"
            )
        self._results.append(result)

    @property
    def results(self) -> list[TestStepResult]:
        return list(self._results)
