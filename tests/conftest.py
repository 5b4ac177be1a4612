"""Shared fixtures for the test suite."""
from __future__ import annotations

import numpy as np
import pandas as pd
import pytest
from scipy.stats import norm

from copulacast.scenarios.marginals import LocationControl
from copulacast.scenarios.pit import TailConfig


LEVELS = [0.05, 0.1, 0.25, 0.5, 0.75, 0.9, 0.95]


def normal_quantile_table(loc: np.ndarray, scale: float = 1.0, levels=LEVELS) -> pd.DataFrame:
    """Quantile table of N(loc, scale) rows with ``q<level>`` columns."""
    loc = np.asarray(loc, dtype=float)
    return pd.DataFrame(
        {f"q{100 * p:g}": norm.ppf(p, loc=loc, scale=scale) for p in levels}
    )


def make_control_frame(issues, horizons, kfold_of_issue) -> pd.DataFrame:
    """Every (issue, horizon) combination with the fold of its issue time."""
    rows = [
        {"kfold": kfold_of_issue(i), "issue_time": issue, "lead_time": h}
        for i, issue in enumerate(issues)
        for h in horizons
    ]
    return pd.DataFrame(rows)


# ── Issue/lead grid for two folds ────────────────────────────────────────
@pytest.fixture
def two_fold_frame() -> pd.DataFrame:
    """Four hourly issue times x three lead times; first two issues in fold 1."""
    issues = pd.date_range("2024-01-01", periods=4, freq="h")
    return make_control_frame(issues, [1, 2, 3], lambda i: 1 if i < 2 else 2)


@pytest.fixture
def interp_tails() -> TailConfig:
    return TailConfig("interpolate", L=-10.0, U=10.0)


@pytest.fixture
def two_location_inputs(two_fold_frame, interp_tails):
    """Quantile-table marginals and controls for two locations sharing a grid."""
    n = len(two_fold_frame)
    marginals = {
        "site_a": normal_quantile_table(np.linspace(-1, 1, n)),
        "site_b": normal_quantile_table(np.linspace(2, 3, n), scale=0.5),
    }
    control = {
        name: LocationControl.from_frame(two_fold_frame, cdf_tails=interp_tails)
        for name in marginals
    }
    return marginals, control


@pytest.fixture
def identity_cov():
    def _make(dim: int, folds=(1, 2)):
        sigma = {f: np.eye(dim) for f in folds}
        mean = {f: np.zeros(dim) for f in folds}
        return sigma, mean
    return _make
