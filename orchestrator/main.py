"""Grid Load Testing Framework - campaign entry point."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Optional

from common.exceptions import InvalidConfiguration
from orchestrator.config import Settings, get_settings
from orchestrator.core.context import CampaignContext
from orchestrator.core.driver import CampaignOutcome, LoadTestDriver
from orchestrator.core.grid import GridMonitor
from orchestrator.core.planner import validate_settings
from orchestrator.core.test_runner import TortureTestRunner
from orchestrator.deployment.grid_setup import GridConfigurator
from orchestrator.deployment.ssh_client import SSHRemoteExecutor
from orchestrator.provisioning.digitalocean import DigitalOceanProvisioner
from orchestrator.storage.report_store import ReportStore

logger = logging.getLogger(__name__)

EXIT_INVALID_CONFIGURATION = 2


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=settings.log_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def install_signal_handlers(context: CampaignContext) -> None:
    """Turn SIGINT/SIGTERM into a cooperative cancel of the campaign."""
    loop = asyncio.get_running_loop()

    def _handle(sig: signal.Signals) -> None:
        logger.warning(f"Received {sig.name}, stopping campaign and cleaning up...")
        context.cancel(f"received {sig.name}")

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _handle, sig)
        except (NotImplementedError, RuntimeError):
            logger.debug(f"Signal handler for {sig.name} not supported on this platform")


def build_driver(
    settings: Settings,
    provisioner: DigitalOceanProvisioner,
    context: Optional[CampaignContext] = None,
) -> LoadTestDriver:
    """Wire the production collaborators around a driver."""
    executor = SSHRemoteExecutor(
        username=settings.ssh_user,
        private_key_path=settings.ssh_key_path,
    )
    return LoadTestDriver(
        settings,
        provisioner,
        TortureTestRunner(executor, settings),
        configurator=GridConfigurator(executor, settings),
        grid_monitor=GridMonitor(port=settings.grid_port),
        store=ReportStore(settings.data_path),
        context=context,
    )


async def run_campaign(settings: Settings) -> int:
    """Run one campaign end to end and return the process exit code."""
    try:
        validate_settings(settings)
        if not settings.do_token:
            raise InvalidConfiguration("GRIDLOAD_DO_TOKEN is required to provision droplets")
    except InvalidConfiguration as e:
        logger.error(f"Invalid configuration: {e}")
        return EXIT_INVALID_CONFIGURATION

    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(
        f"Target: {settings.target_url} | max load {settings.max_load}, "
        f"step {settings.increment_step}, {settings.per_unit_capacity} per node"
    )

    context = CampaignContext()
    install_signal_handlers(context)

    ssh_key_ids = [settings.do_ssh_key_id] if settings.do_ssh_key_id else []
    async with DigitalOceanProvisioner(
        token=settings.do_token,
        api_url=settings.do_api_url,
        image=settings.image,
        ssh_key_ids=ssh_key_ids,
        poll_interval=settings.readiness_poll_interval,
    ) as provisioner:
        driver = build_driver(settings, provisioner, context)
        try:
            outcome: CampaignOutcome = await driver.run()
        except InvalidConfiguration as e:
            logger.error(f"Invalid configuration: {e}")
            return EXIT_INVALID_CONFIGURATION

    if outcome.error_message:
        logger.error(outcome.error_message)
    if outcome.report_path:
        logger.info(f"Report saved to {outcome.report_path}")
    return outcome.exit_code


def main() -> None:
    settings = get_settings()
    configure_logging(settings)
    sys.exit(asyncio.run(run_campaign(settings)))


if __name__ == "__main__":
    main()
