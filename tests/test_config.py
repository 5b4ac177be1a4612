"""Tests for YAML run configuration."""
from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd
import pytest
import yaml

from copulacast.config import (
    MQRConfig,
    ScenarioConfig,
    configure_logging,
    fit_from_config,
    load_config,
    mqr_config_from_yaml,
)
from copulacast.errors import ConfigMismatch, InvalidCopulaType
from copulacast.scenarios.pit import TailConfig

from conftest import normal_quantile_table

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "scenario_config.yaml"


class TestScenarioConfig:

    def test_shipped_config_loads(self):
        cfg = ScenarioConfig.from_yaml(CONFIG_PATH)
        assert cfg.copula_type == "temporal"
        assert cfg.tails == TailConfig("interpolate", L=0.0, U=1.0)
        assert cfg.allow_unmatched is False

    def test_yaml_round_trip(self, tmp_path):
        cfg = ScenarioConfig(copula_type="spatial", n_samples=7, seed=None,
                             pit_method="spline", tails={"method": "extrapolate"})
        path = tmp_path / "run.yaml"
        cfg.to_yaml(path)
        assert ScenarioConfig.from_yaml(path) == cfg

    def test_invalid_copula_type(self):
        with pytest.raises(InvalidCopulaType):
            ScenarioConfig(copula_type="vine")

    @pytest.mark.parametrize("field, value", [
        ("pit_method", "cubic"),
        ("n_samples", 0),
        ("n_jobs", 0),
    ])
    def test_invalid_values(self, field, value):
        with pytest.raises(ConfigMismatch):
            ScenarioConfig(**{field: value})

    def test_generate_uses_settings(self, two_fold_frame, identity_cov):
        cfg = ScenarioConfig(n_samples=5, seed=1, tails={"method": "constant"})
        ctrl = cfg.location_control(two_fold_frame["kfold"], two_fold_frame["issue_time"],
                                    two_fold_frame["lead_time"])
        assert ctrl.cdf_tails.method == "constant"
        table = normal_quantile_table(np.zeros(len(two_fold_frame)))
        sigma, mean = identity_cov(3)
        out = cfg.generate({"a": table}, sigma, mean, {"a": ctrl})
        assert out["a"].shape == (len(two_fold_frame), 5)


class TestMQRConfig:

    def test_shipped_config_loads(self):
        cfg = mqr_config_from_yaml(CONFIG_PATH)
        assert cfg.quantiles == sorted(cfg.quantiles)
        assert cfg.cv_folds == 5
        assert cfg.params["tree_method"] == "hist"

    def test_levels_validated(self):
        with pytest.raises(ConfigMismatch):
            MQRConfig(quantiles=[0.5, 1.5])

    def test_fit_from_config(self):
        rng = np.random.default_rng(0)
        data = pd.DataFrame({"x": rng.uniform(size=80)})
        data["y"] = data["x"] + rng.normal(scale=0.05, size=80)
        cfg = MQRConfig(quantiles=[0.9, 0.1], cv_folds=2, num_boost_round=5)
        mqr = fit_from_config(cfg, data, "y", ["x"])
        assert list(mqr.columns) == ["q10", "q90"]


def test_load_config_reads_sections():
    cfg = load_config(CONFIG_PATH)
    assert set(cfg) >= {"multi_qr", "scenarios"}
    assert yaml.safe_dump(cfg)


def test_configure_logging_returns_package_logger():
    logger = configure_logging(verbose=True)
    assert logger.name == "copulacast"
    assert logger.level == logging.DEBUG
