"""Compute unit models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from common.utils import utcnow


class UnitRole(str, Enum):
    """Role a unit plays in the grid."""
    HUB = "hub"
    NODE = "node"


class WorkerUnit(BaseModel):
    """A provisioned capacity unit (grid hub or browser node)."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Identifier assigned by the provisioner")
    name: str = Field(..., description="Human readable unit name")
    role: UnitRole = Field(default=UnitRole.NODE)
    address: Optional[str] = Field(default=None, description="Public address, set once ready")
    capacity: int = Field(default=0, ge=0, description="Concurrent sessions this unit hosts")
    size_class: Optional[str] = Field(default=None, description="Provider size slug")
    region: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_ready(self) -> bool:
        """Check if the unit has a reachable address."""
        return self.address is not None

    @property
    def is_hub(self) -> bool:
        return self.role == UnitRole.HUB

    def with_address(self, address: str) -> "WorkerUnit":
        """Return a copy of this unit completed with its address."""
        if self.address is not None:
            raise ValueError(f"Unit {self.id} already has address {self.address}")
        return self.model_copy(update={"address": address})


class GridStatus(BaseModel):
    """Snapshot of the grid hub's /status endpoint."""
    ready: bool = False
    message: str = ""
    node_count: int = 0
