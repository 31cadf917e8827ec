"""Capacity planning for load test campaigns."""

from __future__ import annotations

import logging
from decimal import Decimal

from common.exceptions import InvalidConfiguration
from common.models.campaign import InfrastructurePlan
from orchestrator.config import Settings

logger = logging.getLogger(__name__)


def required_units(target_load: int, per_unit_capacity: int) -> int:
    """Number of nodes needed to host ``target_load`` sessions."""
    if per_unit_capacity <= 0:
        raise InvalidConfiguration(
            f"Per-unit capacity must be positive, got {per_unit_capacity}"
        )
    if target_load <= 0:
        raise InvalidConfiguration(f"Target load must be positive, got {target_load}")
    return -(-target_load // per_unit_capacity)


def validate_settings(settings: Settings) -> None:
    """Reject settings that cannot drive a campaign."""
    problems = []

    if settings.max_load <= 0:
        problems.append(f"max_load must be positive (got {settings.max_load})")
    if settings.increment_step <= 0:
        problems.append(f"increment_step must be positive (got {settings.increment_step})")
    elif settings.max_load > 0 and settings.increment_step > settings.max_load:
        problems.append(
            f"increment_step ({settings.increment_step}) exceeds max_load ({settings.max_load})"
        )
    if settings.per_unit_capacity <= 0:
        problems.append(f"per_unit_capacity must be positive (got {settings.per_unit_capacity})")
    if settings.initial_node_cap <= 0:
        problems.append(f"initial_node_cap must be positive (got {settings.initial_node_cap})")
    if settings.provision_concurrency <= 0:
        problems.append(
            f"provision_concurrency must be positive (got {settings.provision_concurrency})"
        )
    if settings.readiness_timeout <= 0:
        problems.append(f"readiness_timeout must be positive (got {settings.readiness_timeout})")
    if settings.cooldown_seconds < 0:
        problems.append(f"cooldown_seconds must not be negative (got {settings.cooldown_seconds})")
    if settings.execution_retries < 0:
        problems.append(f"execution_retries must not be negative (got {settings.execution_retries})")
    if settings.cost_rate_per_unit_hour < 0:
        problems.append(
            f"cost_rate_per_unit_hour must not be negative (got {settings.cost_rate_per_unit_hour})"
        )
    if not settings.test_selection:
        problems.append("tests_to_run must name at least one test")

    if problems:
        raise InvalidConfiguration("; ".join(problems))


def plan_infrastructure(settings: Settings) -> InfrastructurePlan:
    """Compute node counts and hourly cost for the configured maximum load."""
    validate_settings(settings)

    nodes_required = required_units(settings.max_load, settings.per_unit_capacity)
    initial_nodes = min(settings.initial_node_cap, nodes_required)
    hourly_cost = Decimal(nodes_required + 1) * Decimal(settings.cost_rate_per_unit_hour)

    plan = InfrastructurePlan(
        max_load=settings.max_load,
        per_unit_capacity=settings.per_unit_capacity,
        nodes_required=nodes_required,
        initial_nodes=initial_nodes,
        hourly_cost=hourly_cost,
    )

    logger.info(
        f"Infrastructure plan: max load {plan.max_load}, "
        f"{plan.per_unit_capacity} per node, {plan.nodes_required} nodes required, "
        f"{plan.initial_nodes} initial, ${plan.hourly_cost:.2f}/hour"
    )
    return plan
