"""Unit tests for capacity planning."""

from decimal import Decimal

import pytest

from common.exceptions import InvalidConfiguration
from orchestrator.core.planner import plan_infrastructure, required_units, validate_settings


class TestRequiredUnits:
    """Tests for required_units."""

    @pytest.mark.parametrize("load,capacity,expected", [
        (50, 80, 1),
        (80, 80, 1),
        (81, 80, 2),
        (150, 80, 2),
        (200, 80, 3),
        (1000, 80, 13),
        (1, 1, 1),
    ])
    def test_ceiling_division(self, load, capacity, expected):
        assert required_units(load, capacity) == expected

    def test_monotonic_in_load(self):
        counts = [required_units(load, 80) for load in range(1, 500)]
        assert counts == sorted(counts)

    def test_capacity_must_be_positive(self):
        with pytest.raises(InvalidConfiguration):
            required_units(100, 0)
        with pytest.raises(InvalidConfiguration):
            required_units(100, -5)

    def test_load_must_be_positive(self):
        with pytest.raises(InvalidConfiguration):
            required_units(0, 80)


class TestValidateSettings:
    """Tests for settings validation."""

    def test_defaults_are_valid(self, settings):
        validate_settings(settings)

    @pytest.mark.parametrize("update", [
        {"max_load": 0},
        {"increment_step": 0},
        {"increment_step": -10},
        {"increment_step": 500},
        {"per_unit_capacity": 0},
        {"initial_node_cap": 0},
        {"provision_concurrency": 0},
        {"readiness_timeout": 0},
        {"cooldown_seconds": -1},
        {"execution_retries": -1},
        {"cost_rate_per_unit_hour": Decimal("-0.01")},
        {"tests_to_run": " , "},
    ])
    def test_rejects_unusable_values(self, settings, update):
        with pytest.raises(InvalidConfiguration):
            validate_settings(settings.model_copy(update=update))

    def test_reports_every_problem(self, settings):
        bad = settings.model_copy(update={"max_load": 0, "per_unit_capacity": 0})

        with pytest.raises(InvalidConfiguration) as exc_info:
            validate_settings(bad)

        message = str(exc_info.value)
        assert "max_load" in message
        assert "per_unit_capacity" in message


class TestPlanInfrastructure:
    """Tests for plan_infrastructure."""

    def test_plan(self, settings):
        plan = plan_infrastructure(settings)

        assert plan.max_load == 200
        assert plan.per_unit_capacity == 80
        assert plan.nodes_required == 3
        assert plan.initial_nodes == 1
        assert plan.hourly_cost == Decimal(4) * Decimal("0.071")

    def test_initial_nodes_never_exceed_required(self, settings):
        settings = settings.model_copy(update={"initial_node_cap": 10, "max_load": 100})

        plan = plan_infrastructure(settings)

        assert plan.nodes_required == 2
        assert plan.initial_nodes == 2

    def test_invalid_settings_raise(self, settings):
        with pytest.raises(InvalidConfiguration):
            plan_infrastructure(settings.model_copy(update={"per_unit_capacity": -1}))
