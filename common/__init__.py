"""Common utilities and models shared across the orchestrator and CLI."""

from common.models.worker import WorkerUnit, UnitRole
from common.models.campaign import CampaignState, TestStepResult, CampaignReport

__all__ = [
    "WorkerUnit",
    "UnitRole",
    "CampaignState",
    "TestStepResult",
    "CampaignReport",
]
