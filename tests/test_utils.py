"""Unit tests for common utility functions."""

import time
from pathlib import Path

import pytest

from common.utils import (
    Timer,
    ensure_dir,
    format_duration,
    generate_campaign_id,
    generate_id,
    load_yaml,
    sanitize_filename,
    truncate,
    utcnow,
)


class TestGenerateID:
    """Tests for ID generation functions."""

    def test_generate_id_no_prefix(self):
        id1 = generate_id()
        id2 = generate_id()

        assert id1 != id2
        assert "_" in id1

    def test_generate_id_with_prefix(self):
        assert generate_id("test").startswith("test_")

    def test_generate_campaign_id(self):
        assert generate_campaign_id().startswith("campaign_")

    def test_utcnow_is_aware(self):
        assert utcnow().utcoffset().total_seconds() == 0


class TestFormatting:
    """Tests for formatting helpers."""

    @pytest.mark.parametrize("seconds,expected", [
        (0, "0s"),
        (45, "45s"),
        (90, "1m 30s"),
        (3661, "1h 1m 1s"),
    ])
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected

    def test_truncate_short_text(self):
        assert truncate("abc", 10) == "abc"

    def test_truncate_long_text(self):
        result = truncate("a" * 20, 10)

        assert result == "aaaaaaa..."
        assert len(result) == 10

    def test_truncate_tiny_limit(self):
        assert truncate("abcdef", 2) == "ab"

    def test_sanitize_filename(self):
        assert sanitize_filename("my campaign/1?") == "my_campaign1"


class TestFileHelpers:
    """Tests for file helpers."""

    def test_ensure_dir(self, temp_dir):
        path = ensure_dir(temp_dir / "a" / "b")

        assert isinstance(path, Path)
        assert path.is_dir()

    def test_load_yaml(self, temp_dir):
        config = temp_dir / "campaign.yaml"
        config.write_text("max_load: 300\ntarget_url: https://meet.example.org\n")

        assert load_yaml(config) == {"max_load": 300, "target_url": "https://meet.example.org"}

    def test_load_empty_yaml(self, temp_dir):
        config = temp_dir / "empty.yaml"
        config.write_text("")

        assert load_yaml(config) == {}


class TestTimer:
    """Tests for Timer."""

    def test_measures_block(self):
        with Timer() as timer:
            time.sleep(0.01)

        assert timer.elapsed_seconds >= 0.01
        assert timer.elapsed_ms >= 10

    def test_not_started(self):
        assert Timer().elapsed_seconds == 0
