"""Configure hub and node units once they are reachable."""

from __future__ import annotations

import logging

from common.exceptions import ExecutionError, ProvisioningFailure
from common.models.worker import WorkerUnit
from orchestrator.config import Settings
from orchestrator.core.interfaces import RemoteExecutor
from orchestrator.deployment.scripts import (
    HubSetup,
    NodeSetup,
    build_hub_setup_script,
    build_node_setup_script,
    build_test_suite_setup_script,
)

logger = logging.getLogger(__name__)


class GridConfigurator:
    """Install the grid hub, browser nodes and the test suite over SSH."""

    def __init__(self, executor: RemoteExecutor, settings: Settings):
        self.executor = executor
        self.settings = settings

    async def _run(self, unit: WorkerUnit, script: str, description: str) -> str:
        logger.info(f"[{unit.name}] {description}")
        try:
            return await self.executor.run(unit.address, script, timeout=self.settings.setup_timeout)
        except ExecutionError as e:
            raise ProvisioningFailure(f"{description} failed on {unit.name}: {e}", unit_id=unit.id) from e

    async def setup_hub(self, hub: WorkerUnit) -> None:
        script = build_hub_setup_script(HubSetup(
            hub_image=self.settings.hub_image,
            port=self.settings.grid_port,
        ))
        await self._run(hub, script, "Configuring grid hub")

    async def setup_node(self, node: WorkerUnit, hub_address: str) -> None:
        script = build_node_setup_script(NodeSetup(
            node_name=node.name,
            hub_address=hub_address,
            node_image=self.settings.node_image,
            capacity=node.capacity,
        ))
        await self._run(node, script, "Configuring browser node")

    async def setup_test_suite(self, hub: WorkerUnit) -> None:
        await self._run(hub, build_test_suite_setup_script(), "Installing test suite")
