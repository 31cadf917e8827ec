"""Campaign storage: JSON reports and step logs on disk, index in SQLite."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Optional

import aiosqlite
import yaml

from common.models.campaign import CampaignReport, CampaignState, TestStepResult
from common.utils import ensure_dir, sanitize_filename, utcnow

logger = logging.getLogger(__name__)

# SQLite schema
SCHEMA_SQL = """
-- Campaign history
CREATE TABLE IF NOT EXISTS campaigns (
    id TEXT PRIMARY KEY,
    status TEXT DEFAULT 'planning',
    target_url TEXT,
    max_load INTEGER,
    increment_step INTEGER,
    per_unit_capacity INTEGER,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    steps_run INTEGER DEFAULT 0,
    max_successful_load INTEGER,
    breaking_point INTEGER,
    estimated_cost TEXT,
    report_path TEXT,
    error_message TEXT,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_campaigns_status ON campaigns(status);
CREATE INDEX IF NOT EXISTS idx_campaigns_created ON campaigns(created_at);
"""

UPDATABLE_COLUMNS = {
    "steps_run",
    "max_successful_load",
    "breaking_point",
    "estimated_cost",
    "report_path",
    "error_message",
}

FINISHED_STATES = {CampaignState.COMPLETED.value, CampaignState.ABORTED.value}


class ReportStore:
    """Unified campaign data access using files + SQLite."""

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)
        self.db_path = self.base_path / "gridload.db"
        self._init_directories()
        self._init_database_sync()

    def _init_directories(self) -> None:
        """Create required directories."""
        for d in ["reports", "campaigns", "logs"]:
            ensure_dir(self.base_path / d)
        logger.info(f"Initialized data directories at {self.base_path}")

    def _init_database_sync(self) -> None:
        """Initialize SQLite database synchronously."""
        conn = sqlite3.connect(self.db_path)
        try:
            conn.executescript(SCHEMA_SQL)
            conn.commit()
            logger.debug(f"Initialized SQLite database at {self.db_path}")
        finally:
            conn.close()

    def _campaign_dir(self, campaign_id: str) -> Path:
        return ensure_dir(self.base_path / "campaigns" / sanitize_filename(campaign_id))

    # ==================== Campaign index ====================

    async def create_campaign(self, campaign_id: str, config: dict) -> Path:
        """Record a new campaign and snapshot its configuration."""
        campaign_dir = self._campaign_dir(campaign_id)

        config_path = campaign_dir / "config.yaml"
        with open(config_path, 'w') as f:
            yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)

        async with aiosqlite.connect(self.db_path) as conn:
            await conn.execute("""
                INSERT INTO campaigns (
                    id, status, target_url, max_load, increment_step,
                    per_unit_capacity, started_at, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                campaign_id,
                CampaignState.PLANNING.value,
                config.get("target_url"),
                config.get("max_load"),
                config.get("increment_step"),
                config.get("per_unit_capacity"),
                utcnow().isoformat(),
                utcnow().isoformat(),
            ))
            await conn.commit()

        logger.info(f"Created campaign: {campaign_id}")
        return campaign_dir

    async def update_campaign_status(self, campaign_id: str, status: str, **kwargs) -> None:
        """Update campaign status and optional summary fields."""
        unknown = set(kwargs) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unknown campaign fields: {sorted(unknown)}")

        fields = ["status = ?"]
        values: list = [status]

        if status in FINISHED_STATES:
            kwargs["completed_at"] = utcnow().isoformat()

        for key, value in kwargs.items():
            fields.append(f"{key} = ?")
            values.append(value)

        values.append(campaign_id)

        async with aiosqlite.connect(self.db_path) as conn:
            await conn.execute(
                f"UPDATE campaigns SET {', '.join(fields)} WHERE id = ?",
                values
            )
            await conn.commit()

    async def get_campaigns(self, limit: int = 50) -> list[dict]:
        """Get recent campaigns."""
        async with aiosqlite.connect(self.db_path) as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute("""
                SELECT * FROM campaigns
                ORDER BY created_at DESC
                LIMIT ?
            """, (limit,))
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]

    async def get_campaign(self, campaign_id: str) -> Optional[dict]:
        """Get campaign by ID."""
        async with aiosqlite.connect(self.db_path) as conn:
            conn.row_factory = aiosqlite.Row
            cursor = await conn.execute(
                "SELECT * FROM campaigns WHERE id = ?",
                (campaign_id,)
            )
            row = await cursor.fetchone()
            return dict(row) if row else None

    # ==================== Step log ====================

    def append_step(self, campaign_id: str, result: TestStepResult) -> None:
        """Append a step result to the campaign's JSON Lines file."""
        steps_file = self._campaign_dir(campaign_id) / "steps.jsonl"
        with open(steps_file, 'a') as f:
            f.write(result.model_dump_json() + "\n")

    def read_steps(self, campaign_id: str) -> list[TestStepResult]:
        """Read step results back in the order they were recorded."""
        steps_file = self.base_path / "campaigns" / sanitize_filename(campaign_id) / "steps.jsonl"
        if not steps_file.exists():
            return []

        steps = []
        with open(steps_file) as f:
            for line in f:
                if line.strip():
                    try:
                        steps.append(TestStepResult.model_validate_json(line))
                    except ValueError as e:
                        logger.warning(f"Skipping unreadable step line in {steps_file}: {e}")
        return steps

    # ==================== Reports ====================

    def report_filename(self, report: CampaignReport) -> str:
        timestamp = report.created_at.strftime("%Y%m%dT%H%M%S%fZ")
        if report.campaign_id:
            return f"load-test-report-{timestamp}-{sanitize_filename(report.campaign_id)}.json"
        return f"load-test-report-{timestamp}.json"

    def save_report(self, report: CampaignReport) -> Path:
        """Write the report once. Refuses to overwrite an existing file."""
        report_path = self.base_path / "reports" / self.report_filename(report)
        with open(report_path, 'x') as f:
            f.write(report.model_dump_json(indent=2))
        logger.info(f"Saved report to {report_path}")
        return report_path

    def load_report(self, path: str | Path) -> CampaignReport:
        with open(path) as f:
            return CampaignReport.model_validate_json(f.read())

    def list_reports(self) -> list[Path]:
        return sorted((self.base_path / "reports").glob("load-test-report-*.json"))

    # ==================== Logs ====================

    def get_log_path(self, campaign_id: Optional[str] = None) -> Path:
        """Get log file path for a campaign or the orchestrator."""
        if campaign_id:
            return self._campaign_dir(campaign_id) / "campaign.log"
        return self.base_path / "logs" / "orchestrator.log"

    def write_log(self, campaign_id: str, message: str) -> None:
        """Append a timestamped line to the campaign log."""
        log_file = self.get_log_path(campaign_id)
        with open(log_file, 'a') as f:
            f.write(f"{utcnow().isoformat()} {message}\n")

    @staticmethod
    def summary_row(report: CampaignReport, report_path: Path) -> dict:
        """Index fields derived from a finished report."""
        return {
            "steps_run": report.total_steps,
            "max_successful_load": report.max_successful_load,
            "breaking_point": report.breaking_point,
            "estimated_cost": str(report.estimated_cost),
            "report_path": str(report_path),
        }
