"""
Probabilistic scoring of MultiQR forecasts.

Metrics
-------
pinball_loss        — element-wise asymmetric loss for one quantile level
avg_pinball_loss    — mean pinball across all quantiles and rows
pinball_table       — mean pinball per quantile, optionally per fold
reliability         — empirical frequency of y <= q_tau per quantile
crps_from_quantiles — CRPS approximated from the quantile grid
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import pandas as pd

from copulacast.errors import ConfigMismatch
from copulacast.scenarios.pit import quantile_matrix


# ------------------------------------------------------------------
# Pinball / quantile loss
# ------------------------------------------------------------------

def pinball_loss(y_true: np.ndarray, y_pred: np.ndarray, tau: float) -> np.ndarray:
    """
    Element-wise pinball loss for a single quantile level *tau*.

    L_tau(y, q) = tau * max(y - q, 0) + (1 - tau) * max(q - y, 0)
    """
    y_true = np.asarray(y_true, dtype=float)
    y_pred = np.asarray(y_pred, dtype=float)
    diff = y_true - y_pred
    return np.where(diff >= 0, tau * diff, (tau - 1.0) * diff)


def _loss_matrix(mqr: pd.DataFrame, y_true: Sequence[float]):
    levels, values = quantile_matrix(mqr)
    y = np.asarray(y_true, dtype=float)
    if len(y) != values.shape[0]:
        raise ConfigMismatch(f"{len(y)} observations for {values.shape[0]} forecast rows")
    losses = np.column_stack([
        pinball_loss(y, values[:, j], tau) for j, tau in enumerate(levels)
    ])
    return levels, losses


def avg_pinball_loss(mqr: pd.DataFrame, y_true: Sequence[float]) -> float:
    """Mean pinball loss over all quantiles and all rows with an observation."""
    _, losses = _loss_matrix(mqr, y_true)
    return float(np.nanmean(losses))


def pinball_table(
    mqr: pd.DataFrame,
    y_true: Sequence[float],
    kfold: Optional[Sequence] = None,
) -> pd.DataFrame:
    """
    Mean pinball loss per quantile level.

    Without ``kfold`` the result has a single row ``"all"``; with ``kfold``
    there is one row per fold plus ``"all"``.  Columns are quantile levels.
    Rows with a missing observation are ignored.
    """
    levels, losses = _loss_matrix(mqr, y_true)
    frame = pd.DataFrame(losses, columns=levels)
    if kfold is None:
        table = frame.mean().to_frame("all").T
    else:
        kfold = np.asarray(kfold)
        if len(kfold) != len(frame):
            raise ConfigMismatch(f"{len(kfold)} fold labels for {len(frame)} rows")
        table = frame.groupby(kfold, sort=False).mean()
        table.loc["all"] = frame.mean()
    table.columns.name = "quantile"
    return table


def reliability(mqr: pd.DataFrame, y_true: Sequence[float]) -> pd.Series:
    """Fraction of observations at or below each predicted quantile (ideal: the level)."""
    levels, values = quantile_matrix(mqr)
    y = np.asarray(y_true, dtype=float)
    ok = ~np.isnan(y)
    hits = values[ok] >= y[ok, None]
    return pd.Series(hits.mean(axis=0), index=pd.Index(levels, name="quantile"), name="empirical")


# ------------------------------------------------------------------
# CRPS (discrete approximation via quantile grid)
# ------------------------------------------------------------------

def crps_from_quantiles(mqr: pd.DataFrame, y_true: Sequence[float]) -> float:
    """
    Approximate CRPS by the trapezoidal rule on the pinball loss integral:

        CRPS ≈ 2 * ∫ pinball_tau(y, q(tau)) d(tau)

    over the span of the forecast's quantile levels.
    """
    levels, losses = _loss_matrix(mqr, y_true)
    per_level = np.nanmean(losses, axis=0)
    if len(levels) < 2:
        return float(2.0 * per_level[0])
    return float(2.0 * np.sum(np.diff(levels) * (per_level[1:] + per_level[:-1]) / 2.0))
