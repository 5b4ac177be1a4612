"""
Run configuration for MultiQR fitting and copula scenario generation.

Configuration lives in YAML (see ``config/scenario_config.yaml``) and is
loaded into plain dataclasses.  Nested sections are converted in
``__post_init__`` so the dataclasses can also be built from dicts.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from copulacast.errors import ConfigMismatch, InvalidCopulaType
from copulacast.models.multi_qr import MultiQR, fit_multi_qr
from copulacast.scenarios.copula import COPULA_TYPES, generate_scenarios
from copulacast.scenarios.marginals import LocationControl
from copulacast.scenarios.pit import PIT_METHODS, TailConfig

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Set up root logging the way the run scripts do and return the package logger."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
    )
    logger = logging.getLogger("copulacast")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    return logger


def load_config(path: str | Path) -> Dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


@dataclass
class MQRConfig:
    """
    Settings for the k-fold multi-quantile XGBoost fit.

    Attributes:
        quantiles: Quantile levels to fit, each in (0, 1)
        cv_folds: Number of contiguous folds when data has no ``kfold`` column
        sort: Rearrange predicted quantiles so each row is monotone
        sort_limits: Optional ``{"L": lower, "U": upper}`` clip limits
        params: Booster parameters passed to ``xgboost.train``
        num_boost_round: Boosting iterations per model
    """

    quantiles: List[float] = field(default_factory=lambda: [0.25, 0.5, 0.75])
    cv_folds: Optional[int] = None
    sort: bool = True
    sort_limits: Optional[Dict[str, float]] = None
    params: Dict[str, Any] = field(default_factory=lambda: {
        "max_depth": 4,
        "learning_rate": 0.1,
        "subsample": 1.0,
        "tree_method": "hist",
        "seed": 42,
    })
    num_boost_round: int = 100

    def __post_init__(self) -> None:
        self.quantiles = sorted(float(q) for q in self.quantiles)
        bad = [q for q in self.quantiles if not 0.0 < q < 1.0]
        if bad:
            raise ConfigMismatch(f"Quantile levels must lie in (0, 1), got {bad}")


@dataclass
class ScenarioConfig:
    """
    Settings for ``generate_scenarios``.

    Attributes:
        copula_type: "spatial" or "temporal" (spatio-temporal uses "temporal")
        n_samples: Number of scenarios drawn per row
        n_jobs: Worker pool width for per-fold and per-location tasks
        seed: Base seed; per-fold seeds are derived from it
        pit_method: Interpolation between quantiles ("linear" or "spline")
        tails: Tail handling passed to the PIT inverse
        allow_unmatched: Keep control rows without a sampled key as NaN rows
    """

    copula_type: str = "temporal"
    n_samples: int = 100
    n_jobs: int = 1
    seed: Optional[int] = 42
    pit_method: str = "linear"
    tails: TailConfig = field(default_factory=lambda: TailConfig("interpolate", L=0.0, U=1.0))
    allow_unmatched: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.tails, dict):
            self.tails = TailConfig(**self.tails)
        if self.copula_type not in COPULA_TYPES:
            raise InvalidCopulaType(
                f"copula_type must be one of {COPULA_TYPES}, got {self.copula_type!r}"
            )
        if self.pit_method not in PIT_METHODS:
            raise ConfigMismatch(f"Unknown PIT method {self.pit_method!r}")
        if int(self.n_samples) < 1:
            raise ConfigMismatch("n_samples must be a positive integer")
        if int(self.n_jobs) < 1:
            raise ConfigMismatch("n_jobs must be a positive integer")

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "ScenarioConfig":
        return cls(**cfg.get("scenarios", {}))

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ScenarioConfig":
        return cls.from_config(load_config(path))

    def to_yaml(self, path: str | Path) -> None:
        with open(path, "w") as f:
            yaml.dump({"scenarios": asdict(self)}, f, default_flow_style=False, sort_keys=False)

    def location_control(self, kfold, issue_ind, horiz_ind) -> LocationControl:
        """Control for one location using this run's PIT method and tails."""
        return LocationControl(
            kfold=kfold,
            issue_ind=issue_ind,
            horiz_ind=horiz_ind,
            pit_method=self.pit_method,
            cdf_tails=self.tails,
        )

    def generate(self, marginals, sigma_kf, mean_kf, control):
        return generate_scenarios(
            self.copula_type,
            self.n_samples,
            marginals,
            sigma_kf,
            mean_kf,
            control,
            n_jobs=self.n_jobs,
            seed=self.seed,
            allow_unmatched=self.allow_unmatched,
        )


def fit_from_config(cfg: MQRConfig, data, target: str, features: List[str]) -> MultiQR:
    """Run ``fit_multi_qr`` with the settings in ``cfg``."""
    return fit_multi_qr(
        data,
        target,
        features,
        quantiles=cfg.quantiles,
        cv_folds=cfg.cv_folds,
        params=cfg.params,
        num_boost_round=cfg.num_boost_round,
        sort=cfg.sort,
        sort_limits=cfg.sort_limits,
    )


def mqr_config_from_yaml(path: str | Path) -> MQRConfig:
    return MQRConfig(**load_config(path).get("multi_qr", {}))
