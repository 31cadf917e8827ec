"""Campaign report generation."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from common.models.campaign import CampaignReport, TestStepResult
from common.models.worker import UnitRole, WorkerUnit
from common.utils import utcnow

logger = logging.getLogger(__name__)

# Recommended capacity keeps a 20% margin below the best passing load.
SAFETY_NUMERATOR = 4
SAFETY_DENOMINATOR = 5

SECONDS_PER_HOUR = Decimal(3600)
MINIMUM_BILLED_HOURS = Decimal(1)


class ReportGenerator:
    """Aggregate step results into a CampaignReport.

    The generator only reads the result log and the unit registry; it
    never mutates either. Given the same inputs and ``created_at`` it
    produces identical reports.
    """

    def generate(
        self,
        results: Sequence[TestStepResult],
        workers: Sequence[WorkerUnit],
        cost_rate_per_unit_hour: Decimal,
        created_at: Optional[datetime] = None,
        campaign_id: Optional[str] = None,
    ) -> CampaignReport:
        """Build the final report for a campaign."""
        results = list(results)
        workers = list(workers)

        max_successful = self.max_successful_load(results)
        recommended = None
        if max_successful is not None:
            recommended = max_successful * SAFETY_NUMERATOR // SAFETY_DENOMINATOR

        report = CampaignReport(
            campaign_id=campaign_id,
            created_at=created_at or utcnow(),
            results=results,
            max_successful_load=max_successful,
            breaking_point=self.breaking_point(results),
            success_rate=self.success_rate(results),
            recommended_capacity=recommended,
            estimated_cost=self.estimate_cost(results, workers, cost_rate_per_unit_hour),
            workers=workers,
        )

        logger.debug(f"Generated report for campaign {campaign_id}: {len(results)} steps")
        return report

    @staticmethod
    def max_successful_load(results: Sequence[TestStepResult]) -> Optional[int]:
        loads = [r.requested_load for r in results if r.success]
        return max(loads) if loads else None

    @staticmethod
    def breaking_point(results: Sequence[TestStepResult]) -> Optional[int]:
        for result in results:
            if not result.success:
                return result.requested_load
        return None

    @staticmethod
    def success_rate(results: Sequence[TestStepResult]) -> Optional[float]:
        """Fraction of passing steps, or None when no step ran."""
        if not results:
            return None
        return sum(1 for r in results if r.success) / len(results)

    @staticmethod
    def estimate_cost(
        results: Sequence[TestStepResult],
        workers: Sequence[WorkerUnit],
        cost_rate_per_unit_hour: Decimal,
    ) -> Decimal:
        """(nodes + 1 hub) x max(1h, total step time) x hourly rate."""
        node_count = sum(1 for w in workers if w.role == UnitRole.NODE)
        total_seconds = sum(Decimal(str(r.duration_seconds)) for r in results)
        billed_hours = max(MINIMUM_BILLED_HOURS, total_seconds / SECONDS_PER_HOUR)
        return Decimal(node_count + 1) * billed_hours * Decimal(cost_rate_per_unit_hour)

    @staticmethod
    def render_summary(report: CampaignReport, report_path: Optional[str] = None) -> list[str]:
        """Human readable summary lines for the console."""
        def show(value) -> str:
            return str(value) if value is not None else "n/a"

        rate = "n/a" if report.success_rate is None else f"{report.success_rate * 100:.1f}%"
        lines = [
            "=" * 60,
            "LOAD TEST COMPLETE",
            "=" * 60,
            f"Maximum successful load: {show(report.max_successful_load)}",
            f"Breaking point: {report.breaking_point if report.breaking_point is not None else 'Not reached'}",
            f"Recommended capacity: {show(report.recommended_capacity)}",
            f"Steps run: {report.total_steps} (success rate {rate})",
            f"Estimated cost: ${report.estimated_cost:.2f}",
        ]
        if report_path:
            lines.append(f"Full report: {report_path}")
        lines.append("=" * 60)
        return lines
