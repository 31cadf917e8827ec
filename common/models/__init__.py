"""Common data models for the Grid Load Testing Framework."""

from common.models.worker import WorkerUnit, UnitRole, GridStatus
from common.models.campaign import (
    CampaignState,
    StepMetrics,
    TestStepResult,
    InfrastructurePlan,
    CampaignReport,
)

__all__ = [
    "WorkerUnit",
    "UnitRole",
    "GridStatus",
    "CampaignState",
    "StepMetrics",
    "TestStepResult",
    "InfrastructurePlan",
    "CampaignReport",
]
