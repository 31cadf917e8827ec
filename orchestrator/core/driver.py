"""Incremental load test driver.

Runs one campaign: plan the node count, bring up the hub and the first
nodes, then raise the load step by step, adding nodes whenever the next
load needs more capacity, until a step fails or the maximum is reached.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from common.exceptions import (
    CampaignCancelled,
    ExecutionError,
    GridLoadError,
    ProvisioningError,
    ProvisioningFailure,
)
from common.models.campaign import (
    CampaignReport,
    CampaignState,
    InfrastructurePlan,
    TestStepResult,
)
from common.models.worker import UnitRole, WorkerUnit
from common.utils import Timer, format_duration, utcnow
from orchestrator.config import Settings
from orchestrator.core.context import CampaignContext
from orchestrator.core.grid import GridMonitor
from orchestrator.core.interfaces import Provisioner, TestRunner
from orchestrator.core.metrics import (
    bound_diagnostics,
    detect_success,
    extract_diagnostics,
    parse_step_metrics,
)
from orchestrator.core.planner import plan_infrastructure, required_units
from orchestrator.core.report import ReportGenerator
from orchestrator.deployment.grid_setup import GridConfigurator
from orchestrator.storage.report_store import ReportStore

logger = logging.getLogger(__name__)

HUB_TAGS = ["selenium-hub", "auto-provisioned"]
NODE_TAGS = ["selenium-node", "auto-provisioned"]

EXIT_COMPLETED = 0
EXIT_ABORTED = 1
EXIT_INTERRUPTED = 130


@dataclass
class CampaignOutcome:
    """What a finished campaign hands back to its caller."""
    campaign_id: str
    state: CampaignState
    results: list[TestStepResult] = field(default_factory=list)
    report: Optional[CampaignReport] = None
    report_path: Optional[Path] = None
    error_message: Optional[str] = None
    cancelled: bool = False

    @property
    def exit_code(self) -> int:
        if self.state == CampaignState.COMPLETED:
            return EXIT_COMPLETED
        if self.cancelled:
            return EXIT_INTERRUPTED
        return EXIT_ABORTED


class LoadTestDriver:
    """Drive a single incremental load test campaign."""

    def __init__(
        self,
        settings: Settings,
        provisioner: Provisioner,
        test_runner: TestRunner,
        *,
        configurator: Optional[GridConfigurator] = None,
        grid_monitor: Optional[GridMonitor] = None,
        store: Optional[ReportStore] = None,
        report_generator: Optional[ReportGenerator] = None,
        context: Optional[CampaignContext] = None,
    ):
        self.settings = settings
        self.provisioner = provisioner
        self.test_runner = test_runner
        self.configurator = configurator
        self.grid_monitor = grid_monitor
        self.store = store
        self.report_generator = report_generator or ReportGenerator()
        self.context = context or CampaignContext()
        self._execution_failed = False

    @property
    def campaign_id(self) -> str:
        return self.context.campaign_id

    # ==================== Campaign ====================

    async def run(self) -> CampaignOutcome:
        """Run the whole campaign and always clean up what was provisioned.

        InvalidConfiguration propagates before anything is provisioned.
        Provisioning errors and cancellation abort the campaign; the
        outcome reports them instead of raising.
        """
        ctx = self.context
        logger.info(f"Starting campaign: {ctx.campaign_id}")

        plan = self._plan()
        await self._record_start()

        try:
            await self._provision_initial(plan)
            await self._prepare_grid()
            await self._run_incremental_tests()
            ctx.state = CampaignState.ABORTED if self._execution_failed else CampaignState.COMPLETED
        except ProvisioningError as e:
            self._abort(f"Provisioning failed: {e}")
        except CampaignCancelled as e:
            self._abort(f"Campaign cancelled: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error in campaign {ctx.campaign_id}")
            self._abort(f"Unexpected error: {e}")
        except asyncio.CancelledError:
            ctx.cancel("task cancelled")
            self._abort("Campaign task cancelled")
            await self._finish()
            raise

        return await self._finish()

    def _plan(self) -> InfrastructurePlan:
        self.context.state = CampaignState.PLANNING
        return plan_infrastructure(self.settings)

    def _abort(self, message: str) -> None:
        logger.error(f"Campaign {self.campaign_id} aborted: {message}")
        self.context.state = CampaignState.ABORTED
        self.context.error_message = message
        self._log_event(message)

    def _check_cancelled(self) -> None:
        if self.context.cancelled:
            raise CampaignCancelled(self.context.cancel_reason or "interrupted")

    async def _finish(self) -> CampaignOutcome:
        """Write the report (if any step ran) and tear down units."""
        ctx = self.context
        report = None
        report_path = None

        try:
            if ctx.results:
                report = self.report_generator.generate(
                    ctx.results,
                    ctx.units,
                    self.settings.cost_rate_per_unit_hour,
                    campaign_id=ctx.campaign_id,
                )
                if self.store is not None:
                    report_path = self.store.save_report(report)
                for line in ReportGenerator.render_summary(report, str(report_path) if report_path else None):
                    logger.info(line)
            else:
                logger.warning(f"No test steps ran for campaign {ctx.campaign_id}; no report produced")
        finally:
            if ctx.state == CampaignState.ABORTED or self.settings.auto_cleanup:
                await self.cleanup()
            else:
                remaining = [u for u in ctx.units if not ctx.is_destroyed(u.id)]
                logger.info(
                    f"Auto cleanup disabled: {len(remaining)} units left running. "
                    "Run 'gridload cleanup' when done to avoid charges"
                )

        await self._record_end(report, report_path)

        return CampaignOutcome(
            campaign_id=ctx.campaign_id,
            state=ctx.state,
            results=ctx.results,
            report=report,
            report_path=report_path,
            error_message=ctx.error_message,
            cancelled=ctx.cancelled,
        )

    # ==================== Provisioning ====================

    def _node_name(self, index: int) -> str:
        return f"{self.settings.name_prefix}-node-{index}"

    async def _provision_unit(self, role: UnitRole, name: str) -> WorkerUnit:
        """Create one unit, register it, and wait until it has an address."""
        self._check_cancelled()
        ctx = self.context
        is_hub = role == UnitRole.HUB
        size_class = self.settings.hub_size if is_hub else self.settings.node_size

        try:
            provisioned = await self.provisioner.create(
                name,
                size_class,
                self.settings.region,
                tags=HUB_TAGS if is_hub else NODE_TAGS,
            )
        except GridLoadError:
            raise
        except Exception as e:
            raise ProvisioningFailure(f"Failed to create {name}: {e}") from e

        ctx.register(WorkerUnit(
            id=provisioned.id,
            name=provisioned.name,
            role=role,
            capacity=0 if is_hub else self.settings.per_unit_capacity,
            size_class=size_class,
            region=self.settings.region,
        ))
        self._log_event(f"Created {role.value} {provisioned.name} ({provisioned.id})")

        try:
            address = await self.provisioner.wait_ready(
                provisioned.id,
                self.settings.readiness_timeout,
                ctx.cancel_event,
            )
        except GridLoadError:
            raise
        except Exception as e:
            raise ProvisioningFailure(f"Failed waiting for {name}: {e}", unit_id=provisioned.id) from e

        unit = ctx.mark_ready(provisioned.id, address)
        logger.info(f"{role.value.capitalize()} {unit.name} is ready at {address}")
        return unit

    async def _provision_initial(self, plan: InfrastructurePlan) -> None:
        """Bring up the hub and the initial nodes with bounded concurrency."""
        ctx = self.context
        ctx.state = CampaignState.PROVISIONING
        logger.info(f"Provisioning hub and {plan.initial_nodes} initial nodes...")

        semaphore = asyncio.Semaphore(self.settings.provision_concurrency)

        async def bounded(role: UnitRole, name: str) -> WorkerUnit:
            async with semaphore:
                return await self._provision_unit(role, name)

        requests = [(UnitRole.HUB, f"{self.settings.name_prefix}-hub")]
        requests.extend((UnitRole.NODE, self._node_name(i)) for i in range(1, plan.initial_nodes + 1))

        tasks = [asyncio.create_task(bounded(role, name)) for role, name in requests]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            # one failed unit fails the batch; stop the siblings' readiness waits
            pending = [t for t in tasks if not t.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        errors = []
        for (role, name), task in zip(requests, tasks):
            if task.cancelled():
                logger.info(f"Provisioning of {role.value} {name} stopped")
            elif task.exception() is not None:
                logger.error(f"Failed to provision {role.value} {name}: {task.exception()}")
                errors.append(task.exception())

        if errors:
            if ctx.cancelled:
                raise CampaignCancelled(ctx.cancel_reason or "interrupted")
            for error in errors:
                if isinstance(error, ProvisioningError):
                    raise error
            raise ProvisioningFailure(f"Provisioning failed: {errors[0]}") from errors[0]

        logger.info(f"Infrastructure provisioned. Hub at {ctx.hub.address}, {ctx.ready_node_count} nodes ready")

    async def _prepare_grid(self) -> None:
        """Configure the grid and wait for the nodes to join the hub."""
        ctx = self.context
        hub = ctx.hub

        if self.configurator is not None:
            logger.info("Setting up infrastructure...")
            await self.configurator.setup_hub(hub)
            nodes = ctx.nodes
            results = await asyncio.gather(
                *(self.configurator.setup_node(node, hub.address) for node in nodes),
                return_exceptions=True,
            )

            errors = []
            for node, result in zip(nodes, results):
                if isinstance(result, BaseException):
                    logger.error(f"Failed to set up node {node.name}: {result}")
                    errors.append(result)
            if errors:
                for error in errors:
                    if isinstance(error, ProvisioningError):
                        raise error
                raise ProvisioningFailure(f"Node setup failed: {errors[0]}") from errors[0]

            await self.configurator.setup_test_suite(hub)
            logger.info("Infrastructure setup complete")

        await self._wait_for_nodes()

    async def _wait_for_nodes(self) -> None:
        if self.grid_monitor is None:
            return
        self._check_cancelled()
        ctx = self.context
        logger.info(f"Waiting for {ctx.ready_node_count} nodes to join the hub...")
        status = await self.grid_monitor.wait_for_nodes(
            ctx.hub.address,
            ctx.ready_node_count,
            self.settings.node_join_timeout,
            cancel_event=ctx.cancel_event,
        )
        if status is None:
            logger.warning("Could not read grid status from hub")
        else:
            logger.info(
                f"Grid status: ready={status.ready}, nodes={status.node_count}, "
                f"message={status.message!r}"
            )

    async def _scale_up(self, count: int) -> None:
        """Add ``count`` nodes one at a time before the next step runs."""
        ctx = self.context
        ctx.state = CampaignState.SCALING
        logger.info(f"Scaling up: adding {count} more nodes...")

        for _ in range(count):
            node = await self._provision_unit(UnitRole.NODE, self._node_name(len(ctx.nodes) + 1))
            if self.configurator is not None:
                await self.configurator.setup_node(node, ctx.hub.address)

        await self._wait_for_nodes()
        logger.info(f"Added {count} nodes. Total nodes: {ctx.ready_node_count}")
        ctx.state = CampaignState.TESTING

    # ==================== Testing ====================

    async def _run_incremental_tests(self) -> None:
        ctx = self.context
        settings = self.settings
        ctx.state = CampaignState.TESTING
        logger.info("Starting incremental load tests...")

        load = settings.increment_step
        while load <= settings.max_load:
            self._check_cancelled()

            needed = required_units(load, settings.per_unit_capacity)
            if needed > ctx.ready_node_count:
                await self._scale_up(needed - ctx.ready_node_count)

            logger.info(f"Testing with {load} participants...")
            result = await self._run_step(load)
            ctx.record(result)
            if self.store is not None:
                self.store.append_step(ctx.campaign_id, result)
            self._log_step(result)

            if not result.success:
                logger.info(f"Breaking point reached at {load} participants")
                break

            load += settings.increment_step
            if load <= settings.max_load and settings.cooldown_seconds > 0:
                logger.info(f"Cooling down for {settings.cooldown_seconds}s...")
                if await ctx.sleep(settings.cooldown_seconds):
                    raise CampaignCancelled(ctx.cancel_reason or "interrupted")

    async def _run_step(self, load: int) -> TestStepResult:
        """Run the suite at ``load``. An ExecutionError becomes a failed step."""
        ctx = self.context
        timestamp = utcnow()
        attempts = self.settings.execution_retries + 1
        output = None
        error: Optional[ExecutionError] = None

        with Timer() as timer:
            for attempt in range(1, attempts + 1):
                try:
                    output = await self.test_runner.run(
                        ctx.hub.address, load, self.settings.test_selection
                    )
                    error = None
                    break
                except ExecutionError as e:
                    error = e
                    logger.warning(
                        f"Test run at {load} could not execute (attempt {attempt}/{attempts}): {e}"
                    )
                    if ctx.cancelled:
                        break

        if error is not None:
            self._execution_failed = True
            ctx.error_message = f"Execution error at load {load}: {error}"
            self._log_event(ctx.error_message)
            return TestStepResult(
                requested_load=load,
                success=False,
                duration_seconds=timer.elapsed_seconds,
                diagnostics=bound_diagnostics([str(error) or error.__class__.__name__]),
                timestamp=timestamp,
            )

        success = detect_success(output)
        return TestStepResult(
            requested_load=load,
            success=success,
            duration_seconds=timer.elapsed_seconds,
            diagnostics=[] if success else extract_diagnostics(output),
            metrics=parse_step_metrics(output),
            timestamp=timestamp,
        )

    def _log_step(self, result: TestStepResult) -> None:
        status = "PASS" if result.success else "FAIL"
        joined = result.metrics.joined_count or 0
        line = (
            f"{status} | {result.requested_load} requested, {joined} joined | "
            f"{format_duration(result.duration_seconds)} | {result.error_count} errors"
        )
        logger.info(line)
        if result.diagnostics:
            logger.info(f"  Errors: {', '.join(result.diagnostics[:2])}")
        self._log_event(line)

    # ==================== Cleanup ====================

    async def cleanup(self) -> None:
        """Destroy every registered unit. Safe to call more than once."""
        ctx = self.context
        units = [u for u in ctx.units if not ctx.is_destroyed(u.id)]
        if not units:
            return

        logger.info(f"Cleaning up {len(units)} units...")
        results = await asyncio.gather(
            *(self.provisioner.destroy(u.id) for u in units),
            return_exceptions=True,
        )

        for unit, result in zip(units, results):
            if isinstance(result, BaseException):
                logger.error(f"Failed to destroy {unit.name} ({unit.id}): {result}")
                self._log_event(f"Failed to destroy {unit.name}: {result}")
            else:
                ctx.mark_destroyed(unit.id)
                logger.info(f"Deleted {unit.name}")

        logger.info("Cleanup complete")

    # ==================== Bookkeeping ====================

    def _log_event(self, message: str) -> None:
        if self.store is not None:
            self.store.write_log(self.campaign_id, message)

    async def _record_start(self) -> None:
        if self.store is None:
            return
        snapshot = self.settings.model_dump(mode="json", exclude={"do_token"})
        await self.store.create_campaign(self.campaign_id, snapshot)

    async def _record_end(self, report: Optional[CampaignReport], report_path: Optional[Path]) -> None:
        if self.store is None:
            return
        ctx = self.context
        fields = {"steps_run": len(ctx.results)}
        if report is not None and report_path is not None:
            fields.update(ReportStore.summary_row(report, report_path))
        if ctx.error_message:
            fields["error_message"] = ctx.error_message
        await self.store.update_campaign_status(ctx.campaign_id, ctx.state.value, **fields)
        logger.info(f"Campaign {ctx.campaign_id} finished: {ctx.state.value}")
