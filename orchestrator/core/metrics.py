"""Best-effort extraction of step metrics from raw test output.

Every extractor returns ``None`` (or an empty list) when its pattern is
absent. Nothing here raises on malformed output.
"""

from __future__ import annotations

import re
from typing import Optional

from common.models.campaign import StepMetrics
from common.utils import truncate

MAX_FAILURE_REASONS = 3
MAX_DIAGNOSTICS = 5
MAX_DIAGNOSTIC_LENGTH = 500

JOINED_PATTERN = re.compile(r"(\d+)\s+participants?\s+joined", re.IGNORECASE)
TOTAL_TIME_PATTERN = re.compile(r"Total time:\s+(\d+:\d+)")
FAILURE_REASON_PATTERN = re.compile(r"(?:ERROR|FAILED):[^\n]*")
DIAGNOSTIC_PATTERN = re.compile(r"ERROR.*|FAILED.*")


def extract_joined_count(output: str) -> Optional[int]:
    """Participant count from the last '<N> participants joined' token."""
    matches = JOINED_PATTERN.findall(output)
    if not matches:
        return None
    return int(matches[-1])


def extract_test_duration(output: str) -> Optional[str]:
    """The last 'Total time: m:ss' token."""
    matches = TOTAL_TIME_PATTERN.findall(output)
    if not matches:
        return None
    return matches[-1]


def extract_failure_reasons(output: str, limit: int = MAX_FAILURE_REASONS) -> list[str]:
    """Up to ``limit`` ERROR:/FAILED: lines, in document order."""
    return [m.strip() for m in FAILURE_REASON_PATTERN.findall(output)[:limit]]


def extract_diagnostics(output: str, limit: int = MAX_DIAGNOSTICS) -> list[str]:
    """Up to ``limit`` ERROR/FAILED fragments for a failed step."""
    return [
        truncate(m.strip(), MAX_DIAGNOSTIC_LENGTH)
        for m in DIAGNOSTIC_PATTERN.findall(output)[:limit]
    ]


def detect_success(output: str) -> bool:
    """Maven reports BUILD SUCCESS, or at least no FAILURES summary."""
    return "BUILD SUCCESS" in output or "FAILURES" not in output


def parse_step_metrics(output: str) -> StepMetrics:
    """Collect all extracted metrics for one test run."""
    return StepMetrics(
        joined_count=extract_joined_count(output),
        test_duration=extract_test_duration(output),
        failure_reasons=extract_failure_reasons(output),
    )


def bound_diagnostics(messages: list[str]) -> list[str]:
    """Cap a diagnostics list to the step limits."""
    return [truncate(m, MAX_DIAGNOSTIC_LENGTH) for m in messages[:MAX_DIAGNOSTICS]]
