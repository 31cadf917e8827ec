"""Orchestrator configuration settings."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Campaign settings loaded from environment variables and .env."""

    # Application
    app_name: str = "Grid Load Testing Framework"
    app_version: str = "1.0.0"

    # Data storage
    data_path: Path = Field(default=Path("./data"))

    # Target under test
    target_url: str = "https://meet.jit.si"
    tests_to_run: str = "PeerConnectionStatusTest,PSNRTest,UDPTest"

    # Load plan
    max_load: int = 1000
    increment_step: int = 50
    per_unit_capacity: int = 80
    initial_node_cap: int = 3

    # Cloud provider
    do_token: Optional[str] = None
    do_ssh_key_id: Optional[str] = None
    do_api_url: str = "https://api.digitalocean.com/v2"
    region: str = "nyc1"
    hub_size: str = "s-2vcpu-4gb"
    node_size: str = "s-4vcpu-8gb"
    image: str = "ubuntu-22-04-x64"
    name_prefix: str = "jitsi"

    # Provisioning
    provision_concurrency: int = 5
    readiness_timeout: int = 300  # seconds
    readiness_poll_interval: float = 10  # seconds
    node_join_timeout: int = 30  # seconds

    # SSH
    ssh_user: str = "root"
    ssh_key_path: Optional[str] = None
    setup_timeout: int = 900  # seconds

    # Grid
    hub_image: str = "selenium/hub:4.15.0"
    node_image: str = "selenium/node-chrome:4.15.0"
    grid_port: int = 4444

    # Test execution
    test_timeout: int = 300  # seconds, per test run inside the suite
    cooldown_seconds: float = 30
    execution_retries: int = 0

    # Cost and cleanup
    cost_rate_per_unit_hour: Decimal = Decimal("0.071")
    auto_cleanup: bool = True

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_prefix = "GRIDLOAD_"
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def test_selection(self) -> list[str]:
        """Tests to run, parsed from the comma-separated setting."""
        return [t.strip() for t in self.tests_to_run.split(",") if t.strip()]

    @property
    def reports_path(self) -> Path:
        return self.data_path / "reports"

    @property
    def campaigns_path(self) -> Path:
        return self.data_path / "campaigns"

    @property
    def logs_path(self) -> Path:
        return self.data_path / "logs"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def init_settings(**kwargs) -> Settings:
    """Initialize settings with custom values."""
    global _settings
    _settings = Settings(**kwargs)
    return _settings
