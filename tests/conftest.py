"""Pytest configuration and shared fixtures."""

import asyncio
import tempfile
import shutil
from pathlib import Path
from typing import Generator, Optional

import pytest

from common.exceptions import DestroyError, ExecutionError, ProvisioningFailure, ProvisioningTimeout
from orchestrator.config import Settings
from orchestrator.core.interfaces import ProvisionedUnit, Provisioner, TestRunner
from orchestrator.storage.report_store import ReportStore


PASSING_OUTPUT = """
[INFO] Running PeerConnectionStatusTest
[INFO] {load} participants joined
[INFO] Tests run: 3, Failures: 0, Errors: 0, Skipped: 0
[INFO] BUILD SUCCESS
[INFO] Total time:  4:12 min
"""

FAILING_OUTPUT = """
[INFO] Running PeerConnectionStatusTest
[INFO] {load} participants joined
ERROR: participant 17 failed to establish a peer connection
FAILED: PSNRTest timed out waiting for media
[ERROR] FAILURES:
[ERROR]   PeerConnectionStatusTest.checkStatus
[INFO] BUILD FAILURE
[INFO] Total time:  6:40 min
"""


class FakeProvisioner(Provisioner):
    """In-memory provisioner recording every call."""

    def __init__(
        self,
        timeout_names: tuple = (),
        failing_destroy_ids: tuple = (),
        ready_delay: float = 0,
        rejected_names: tuple = (),
    ):
        self.timeout_names = set(timeout_names)
        self.failing_destroy_ids = set(failing_destroy_ids)
        self.ready_delay = ready_delay
        self.rejected_names = set(rejected_names)
        self.created: list[ProvisionedUnit] = []
        self.destroy_calls: list[str] = []
        self.destroyed: set[str] = set()
        self.tags: dict[str, list[str]] = {}

    @property
    def created_ids(self) -> list[str]:
        return [u.id for u in self.created]

    @property
    def live_ids(self) -> set[str]:
        return set(self.created_ids) - self.destroyed

    async def create(self, name, size_class, region, *, tags=None):
        if name in self.rejected_names:
            raise ProvisioningFailure(f"create {name} rejected: 422 size unavailable")
        unit = ProvisionedUnit(id=f"unit-{len(self.created) + 1}", name=name)
        self.created.append(unit)
        self.tags[unit.id] = list(tags or [])
        return unit

    async def wait_ready(self, unit_id, timeout, cancel_event=None):
        if self.ready_delay:
            await asyncio.sleep(self.ready_delay)
        unit = next(u for u in self.created if u.id == unit_id)
        if unit.name in self.timeout_names:
            raise ProvisioningTimeout(f"{unit.name} not ready", unit_id=unit_id)
        return f"10.0.0.{self.created.index(unit) + 1}"

    async def destroy(self, unit_id):
        self.destroy_calls.append(unit_id)
        if unit_id in self.failing_destroy_ids:
            raise DestroyError(f"cannot delete {unit_id}", unit_id=unit_id)
        self.destroyed.add(unit_id)


class FakeTestRunner(TestRunner):
    """Returns scripted output per load.

    ``fail_at`` makes every load at or above it fail; ``errors`` maps a
    load to an exception (or a list of exceptions, one per attempt).
    """

    def __init__(self, fail_at: Optional[int] = None, errors: Optional[dict] = None, on_run=None):
        self.fail_at = fail_at
        self.errors = dict(errors or {})
        self.on_run = on_run
        self.calls: list[tuple[str, int, list[str]]] = []

    @property
    def loads(self) -> list[int]:
        return [load for _, load, _ in self.calls]

    async def run(self, hub_address, load, test_selection):
        self.calls.append((hub_address, load, list(test_selection)))
        if self.on_run is not None:
            self.on_run(load)

        error = self.errors.get(load)
        if isinstance(error, list):
            error = error.pop(0) if error else None
        if error is not None:
            raise error

        if self.fail_at is not None and load >= self.fail_at:
            return FAILING_OUTPUT.format(load=load - 3)
        return PASSING_OUTPUT.format(load=load)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def report_store(temp_dir: Path) -> ReportStore:
    """Create a ReportStore instance with temporary directory."""
    return ReportStore(temp_dir)


@pytest.fixture
def settings(temp_dir: Path) -> Settings:
    """Small campaign: loads 50..200, 80 per node, no cooldown."""
    return Settings(
        _env_file=None,
        data_path=temp_dir,
        max_load=200,
        increment_step=50,
        per_unit_capacity=80,
        initial_node_cap=1,
        cooldown_seconds=0,
        readiness_timeout=5,
        do_token="test-token",
    )


@pytest.fixture
def provisioner() -> FakeProvisioner:
    return FakeProvisioner()


@pytest.fixture
def execution_error() -> ExecutionError:
    return ExecutionError("ssh: connect to host 10.0.0.1 port 22: Connection refused", address="10.0.0.1")


@pytest.fixture
def make_provisioner():
    """Factory for FakeProvisioner instances."""
    return FakeProvisioner


@pytest.fixture
def make_runner():
    """Factory for FakeTestRunner instances."""
    return FakeTestRunner
