"""Unit tests for metric extraction from test output."""

from orchestrator.core.metrics import (
    MAX_DIAGNOSTIC_LENGTH,
    bound_diagnostics,
    detect_success,
    extract_diagnostics,
    extract_failure_reasons,
    extract_joined_count,
    extract_test_duration,
    parse_step_metrics,
)


class TestExtractors:
    """Tests for the individual extractors."""

    def test_joined_count_takes_last_match(self):
        output = "10 participants joined\n...\n42 participants joined\n"
        assert extract_joined_count(output) == 42

    def test_joined_count_singular(self):
        assert extract_joined_count("1 participant joined") == 1

    def test_joined_count_absent(self):
        assert extract_joined_count("BUILD SUCCESS") is None

    def test_test_duration_takes_last_match(self):
        output = "Total time:  0:45 min\nTotal time:  4:12 min\n"
        assert extract_test_duration(output) == "4:12"

    def test_test_duration_absent(self):
        assert extract_test_duration("") is None

    def test_failure_reasons_capped_at_three(self):
        output = "\n".join(f"ERROR: problem {i}" for i in range(6))

        reasons = extract_failure_reasons(output)

        assert reasons == ["ERROR: problem 0", "ERROR: problem 1", "ERROR: problem 2"]

    def test_failure_reasons_stop_at_line_end(self):
        output = "FAILED: first\nnot a reason\n"
        assert extract_failure_reasons(output) == ["FAILED: first"]

    def test_diagnostics_capped_and_truncated(self):
        long_line = "ERROR " + "x" * 2000
        output = "\n".join([long_line] * 8)

        diagnostics = extract_diagnostics(output)

        assert len(diagnostics) == 5
        assert all(len(d) <= MAX_DIAGNOSTIC_LENGTH for d in diagnostics)
        assert diagnostics[0].endswith("...")

    def test_diagnostics_empty_for_clean_output(self):
        assert extract_diagnostics("BUILD SUCCESS") == []


class TestDetectSuccess:
    """Tests for success detection."""

    def test_build_success(self):
        assert detect_success("[INFO] BUILD SUCCESS")

    def test_failures_summary(self):
        assert not detect_success("[ERROR] FAILURES:\n[INFO] BUILD FAILURE")

    def test_build_success_wins_over_failures(self):
        assert detect_success("FAILURES: 0\nBUILD SUCCESS")

    def test_no_markers_counts_as_success(self):
        assert detect_success("")


class TestParseStepMetrics:
    """Tests for parse_step_metrics."""

    def test_all_fields(self):
        output = "77 participants joined\nERROR: one\nTotal time:  5:01 min\n"

        metrics = parse_step_metrics(output)

        assert metrics.joined_count == 77
        assert metrics.test_duration == "5:01"
        assert metrics.failure_reasons == ["ERROR: one"]

    def test_malformed_output(self):
        metrics = parse_step_metrics("\x00garbage\nparticipants joined\nTotal time: soon")

        assert metrics.joined_count is None
        assert metrics.test_duration is None
        assert metrics.failure_reasons == []

    def test_bound_diagnostics(self):
        bounded = bound_diagnostics(["a" * 1000] + ["b"] * 10)

        assert len(bounded) == 5
        assert len(bounded[0]) == MAX_DIAGNOSTIC_LENGTH
        assert bounded[1] == "b"
