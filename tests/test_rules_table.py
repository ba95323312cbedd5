"""Tests for rule table loading."""

import json
from pathlib import Path

import pytest

from plain_triage.core.errors import ConfigurationError
from plain_triage.core.rules import DEFAULT_RULES, load_rule_table, parse_rule_table
from plain_triage.domain.models import PriorityBand


def _band(keywords: list[str], tiers: list[str], threshold: int) -> dict:
    return {"keywords": keywords, "eligible_tiers": tiers, "response_threshold_seconds": threshold}


@pytest.fixture
def table() -> dict:
    return {
        "P0": _band(["Down", "Outage"], ["enterprise"], 600),
        "P1": _band(["bug"], ["enterprise", "team"], 3600),
        "P2": _band(["question"], ["team"], 86400),
        "P3": _band(["idea"], [], 259200),
    }


class TestLoadRuleTable:
    """Tests for load_rule_table."""

    def test_no_path_returns_defaults(self) -> None:
        assert load_rule_table(None) is DEFAULT_RULES

    def test_defaults_cover_every_band(self) -> None:
        assert set(DEFAULT_RULES.bands) == set(PriorityBand)

    def test_loads_json_override(self, tmp_path: Path, table: dict) -> None:
        path = tmp_path / "rules.json"
        path.write_text(json.dumps(table), encoding="utf-8")

        rules = load_rule_table(str(path))

        assert rules.bands[PriorityBand.P0].keywords == ("down", "outage")
        assert rules.bands[PriorityBand.P1].eligible_tiers == frozenset({"enterprise", "team"})
        assert rules.bands[PriorityBand.P3].response_threshold_seconds == 259200

    def test_missing_file_is_configuration_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError):
            load_rule_table(str(tmp_path / "nope.json"))

    def test_invalid_json_is_configuration_error(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_rule_table(str(path))

    def test_non_object_is_configuration_error(self, tmp_path: Path) -> None:
        path = tmp_path / "rules.json"
        path.write_text("[]", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_rule_table(str(path))


class TestParseRuleTable:
    """Tests for rule table validation."""

    def test_missing_band_is_rejected(self, table: dict) -> None:
        del table["P3"]

        with pytest.raises(ConfigurationError, match="P3"):
            parse_rule_table(table)

    def test_negative_threshold_is_rejected(self, table: dict) -> None:
        table["P1"]["response_threshold_seconds"] = -1

        with pytest.raises(ConfigurationError):
            parse_rule_table(table)

    def test_unknown_band_is_rejected(self, table: dict) -> None:
        table["P9"] = _band([], [], 0)

        with pytest.raises(ConfigurationError):
            parse_rule_table(table)

    def test_blank_keywords_are_dropped(self, table: dict) -> None:
        table["P2"]["keywords"] = ["question", "  "]

        assert parse_rule_table(table).bands[PriorityBand.P2].keywords == ("question",)
