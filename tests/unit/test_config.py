"""Unit tests for config loading, env interpolation, and validation."""
from __future__ import annotations

from pathlib import Path

import pytest

from lpshield.config import (
    AppConfig,
    RiskConfig,
    SettlementConfig,
    TriggerConfig,
    _interpolate_env,
    load_config,
)


class TestInterpolateEnv:
    def test_keeper_address_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("KEEPER_ADDRESS", "0xabc")
        assert _interpolate_env({"keepers": ["${KEEPER_ADDRESS}"]}) == {"keepers": ["0xabc"]}

    def test_several_references_in_one_string(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("HERMES_HOST", "hermes.example.com")
        monkeypatch.setenv("HERMES_PATH", "v2/updates")
        url = _interpolate_env("https://${HERMES_HOST}/${HERMES_PATH}")
        assert url == "https://hermes.example.com/v2/updates"

    def test_unset_reference_is_blank(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("LPSHIELD_UNSET_VAR", raising=False)
        assert _interpolate_env("0x${LPSHIELD_UNSET_VAR}") == "0x"

    def test_numbers_untouched(self) -> None:
        assert _interpolate_env({"fee_rate_bps": 2500, "hf_warning": 1.5}) == {
            "fee_rate_bps": 2500,
            "hf_warning": 1.5,
        }


class TestLoadConfig:
    def test_loads_valid_yaml(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert isinstance(cfg, AppConfig)
        assert cfg.risk.max_price_age_seconds == 45
        assert cfg.risk.critical_deviation_bps == 400
        assert cfg.trigger.min_interval_seconds == 1800
        assert cfg.settlement.fee_rate_bps == 2000
        assert cfg.access.keepers == ("0xK1", "0xK2")
        assert cfg.price_oracle.pyth.feeds == {"ETH": "aaa", "BTC": "bbb"}

    def test_health_factors_are_scaled(self, sample_yaml_path: Path) -> None:
        cfg = load_config(sample_yaml_path)
        assert cfg.trigger.hf_warning == 1_600_000_000_000_000_000
        assert cfg.trigger.hf_reduce == 1_350_000_000_000_000_000
        assert cfg.trigger.hf_emergency == 1_150_000_000_000_000_000

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("")
        cfg = load_config(cfg_file)
        assert cfg.risk == RiskConfig()
        assert cfg.trigger == TriggerConfig()
        assert cfg.settlement == SettlementConfig()

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError, match="absent.yaml"):
            load_config(tmp_path / "absent.yaml")

    def test_partial_section_keeps_other_defaults(self, tmp_path: Path) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("settlement: {fee_rate_bps: 1000}\ntrigger: {hf_warning: 2}\n")
        cfg = load_config(cfg_file)
        assert cfg.settlement == SettlementConfig(fee_rate_bps=1_000)
        assert cfg.trigger.hf_warning == 2 * 10**18
        assert cfg.trigger.hf_reduce == TriggerConfig().hf_reduce

    def test_env_interpolation_in_yaml(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TEST_KEEPER", "0xABCDEF")
        monkeypatch.delenv("UNSET_GOVERNOR_XYZ", raising=False)
        yaml_content = """\
access:
  keepers: ["${TEST_KEEPER}"]
  governors: ["${UNSET_GOVERNOR_XYZ}"]
"""
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(yaml_content)
        cfg = load_config(cfg_file)
        assert cfg.access.keepers == ("0xABCDEF",)
        assert cfg.access.governors == ()


class TestValidation:
    @pytest.mark.parametrize(
        "yaml_content,match",
        [
            (
                "risk: {warning_deviation_bps: 500, critical_deviation_bps: 200}",
                "Deviation tiers",
            ),
            ("risk: {max_price_age_seconds: 0}", "max_price_age_seconds"),
            ("trigger: {hf_warning: 1.2, hf_reduce: 1.3}", "Health factor tiers"),
            ("trigger: {reduce_fraction_bps: 0}", "reduce_fraction_bps"),
            ("settlement: {fee_rate_bps: 10001}", "fee_rate_bps"),
            ("settlement: {period_seconds: 0}", "period_seconds"),
            ("settlement: {window_seconds: -1}", "window_seconds"),
        ],
    )
    def test_invalid_values_raise(
        self, tmp_path: Path, yaml_content: str, match: str
    ) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(yaml_content)
        with pytest.raises(ValueError, match=match):
            load_config(cfg_file)


class TestFrozenConfigs:
    def test_risk_config_immutable(self) -> None:
        c = RiskConfig()
        with pytest.raises(AttributeError):
            c.max_price_age_seconds = 999  # type: ignore[misc]

    def test_settlement_config_immutable(self) -> None:
        c = SettlementConfig()
        with pytest.raises(AttributeError):
            c.fee_rate_bps = 0  # type: ignore[misc]
