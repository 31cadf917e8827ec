"""Campaign models: step results, infrastructure plans and the final report."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from common.models.worker import WorkerUnit
from common.utils import utcnow


class CampaignState(str, Enum):
    """Campaign lifecycle states."""
    PLANNING = "planning"
    PROVISIONING = "provisioning"
    TESTING = "testing"
    SCALING = "scaling"
    COMPLETED = "completed"
    ABORTED = "aborted"


class StepMetrics(BaseModel):
    """Best-effort metrics parsed from test output."""
    model_config = ConfigDict(frozen=True)

    joined_count: Optional[int] = Field(default=None, description="Participants reported as joined")
    test_duration: Optional[str] = Field(default=None, description="Total time token, e.g. '4:12'")
    failure_reasons: list[str] = Field(default_factory=list)


class TestStepResult(BaseModel):
    """Outcome of running the test at one load level."""
    model_config = ConfigDict(frozen=True)
    __test__ = False

    requested_load: int = Field(..., gt=0)
    success: bool
    duration_seconds: float = Field(default=0, ge=0)
    diagnostics: list[str] = Field(default_factory=list)
    metrics: StepMetrics = Field(default_factory=StepMetrics)
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def error_count(self) -> int:
        return len(self.diagnostics)


class InfrastructurePlan(BaseModel):
    """Node count and hourly cost for a campaign's maximum load."""
    max_load: int
    per_unit_capacity: int
    nodes_required: int
    initial_nodes: int
    hourly_cost: Decimal


class CampaignReport(BaseModel):
    """Aggregate of a finished campaign. Built once, never mutated."""
    model_config = ConfigDict(frozen=True)

    campaign_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    results: list[TestStepResult] = Field(default_factory=list)
    max_successful_load: Optional[int] = None
    breaking_point: Optional[int] = None
    success_rate: Optional[float] = Field(default=None, ge=0, le=1)
    recommended_capacity: Optional[int] = None
    estimated_cost: Decimal = Decimal("0")

    workers: list[WorkerUnit] = Field(default_factory=list)

    @property
    def total_steps(self) -> int:
        return len(self.results)

    @property
    def breaking_point_reached(self) -> bool:
        return self.breaking_point is not None
