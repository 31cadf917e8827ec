"""Exception hierarchy for load test campaigns."""

from __future__ import annotations

from typing import Optional


class GridLoadError(Exception):
    """Base class for all campaign errors."""


class InvalidConfiguration(GridLoadError):
    """Campaign settings are unusable. Raised before anything is provisioned."""


class ProvisioningError(GridLoadError):
    """A compute unit could not be brought up."""

    def __init__(self, message: str, unit_id: Optional[str] = None):
        super().__init__(message)
        self.unit_id = unit_id


class ProvisioningTimeout(ProvisioningError):
    """A unit did not report a reachable address within the readiness timeout."""


class ProvisioningFailure(ProvisioningError):
    """The provider rejected a request or unit setup failed."""


class ExecutionError(GridLoadError):
    """A remote script or test run could not be executed."""

    def __init__(self, message: str, address: Optional[str] = None, output: str = ""):
        super().__init__(message)
        self.address = address
        self.output = output


class DestroyError(GridLoadError):
    """A unit could not be destroyed during cleanup."""

    def __init__(self, message: str, unit_id: Optional[str] = None):
        super().__init__(message)
        self.unit_id = unit_id


class CampaignCancelled(GridLoadError):
    """The campaign was interrupted by a cancellation signal."""
