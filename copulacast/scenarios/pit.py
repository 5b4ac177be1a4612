"""
Probability Integral Transform for quantile-table marginals.

Each row of a quantile table defines a piecewise CDF through the knots
(level_j, value_j).  ``pit`` maps observations in the native domain to (0, 1),
``pit_inverse`` maps uniform samples back to the native domain.

Interpolation between knots:
    linear  — straight lines (np.interp)
    spline  — monotone cubic (PCHIP), never overshoots adjacent quantiles

Tail handling beyond the outermost quantiles (``TailConfig.method``):
    interpolate — add knots (0, L) and (1, U) and interpolate to them
    extrapolate — continue the slope of the two outermost knots
    constant    — clamp to the outermost quantile values
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy.interpolate import PchipInterpolator

from copulacast.errors import ConfigMismatch, TransformFailure


PIT_METHODS = ("linear", "spline")
TAIL_METHODS = ("interpolate", "extrapolate", "constant")


@dataclass(frozen=True)
class TailConfig:
    """Tail handling for the PIT; ``L``/``U`` are the distribution bounds."""

    method: str = "constant"
    L: Optional[float] = None
    U: Optional[float] = None

    def __post_init__(self) -> None:
        if self.method not in TAIL_METHODS:
            raise ConfigMismatch(
                f"Tail method must be one of {TAIL_METHODS}, got {self.method!r}"
            )
        if self.method == "interpolate" and (self.L is None or self.U is None):
            raise ConfigMismatch("Tail method 'interpolate' needs both L and U")
        if self.L is not None and self.U is not None and self.L > self.U:
            raise ConfigMismatch(f"Tail bounds reversed: L={self.L} > U={self.U}")


# ------------------------------------------------------------------
# Quantile table helpers
# ------------------------------------------------------------------

def parse_level(column) -> float:
    """Quantile level from a column label: ``"q50"`` -> 0.5, ``0.25`` -> 0.25."""
    if isinstance(column, str):
        label = column[1:] if column.lower().startswith("q") else column
        level = float(label) / 100.0
    else:
        level = float(column)
    if not 0.0 < level < 1.0:
        raise ConfigMismatch(f"Column {column!r} is not a quantile level in (0, 1)")
    return level


def level_label(level: float) -> str:
    """Inverse of ``parse_level`` for string labels: 0.5 -> ``"q50"``."""
    return f"q{100 * level:g}"


def quantile_matrix(frame: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split a quantile table into sorted levels and a (n_rows, n_levels) value matrix.

    Raises TransformFailure if any complete row decreases with the level.
    """
    levels = np.array([parse_level(c) for c in frame.columns])
    order = np.argsort(levels)
    levels = levels[order]
    if np.any(np.diff(levels) <= 0):
        raise ConfigMismatch("Duplicate quantile levels in table")
    values = frame.to_numpy(dtype=float)[:, order]

    steps = np.diff(values, axis=1)
    crossing = np.any(steps < 0, axis=1)
    if crossing.any():
        bad_rows = list(frame.index[crossing][:5])
        raise TransformFailure(
            f"Quantile table is not monotone in {int(crossing.sum())} row(s), "
            f"first rows: {bad_rows}"
        )
    return levels, values


def _knots(levels: np.ndarray, values: np.ndarray, tails: TailConfig) -> Tuple[np.ndarray, np.ndarray]:
    if tails.method == "interpolate":
        if values[0] < tails.L or values[-1] > tails.U:
            raise TransformFailure(
                f"Quantiles [{values[0]:g}, {values[-1]:g}] fall outside "
                f"tail bounds [{tails.L:g}, {tails.U:g}]"
            )
        return np.r_[0.0, levels, 1.0], np.r_[tails.L, values, tails.U]
    return levels, values


def _spline_grid(p: np.ndarray, v: np.ndarray, n: int = 2001) -> Tuple[np.ndarray, np.ndarray]:
    """Dense evaluation of the monotone inverse-CDF spline, knots included."""
    grid = np.union1d(np.linspace(p[0], p[-1], n), p)
    return grid, PchipInterpolator(p, v)(grid)


def _end_slopes(p: np.ndarray, v: np.ndarray) -> Tuple[float, float]:
    if len(p) < 2:
        raise TransformFailure("Tail extrapolation needs at least two quantiles")
    lo = (v[1] - v[0]) / (p[1] - p[0])
    hi = (v[-1] - v[-2]) / (p[-1] - p[-2])
    return lo, hi


# ------------------------------------------------------------------
# Row-wise transforms
# ------------------------------------------------------------------

def _inverse_row(u: np.ndarray, levels, values, method: str, tails: TailConfig) -> np.ndarray:
    if np.isnan(values).any():
        return np.full_like(u, np.nan)
    p, v = _knots(levels, values, tails)
    inside = np.clip(u, p[0], p[-1])
    if method == "spline" and len(p) > 2:
        out = PchipInterpolator(p, v, extrapolate=False)(inside)
    else:
        out = np.interp(inside, p, v)

    if tails.method == "extrapolate":
        lo, hi = _end_slopes(p, v)
        below = u < p[0]
        above = u > p[-1]
        out[below] = v[0] - lo * (p[0] - u[below])
        out[above] = v[-1] + hi * (u[above] - p[-1])
    out[np.isnan(u)] = np.nan
    return out


def _forward_row(x: np.ndarray, levels, values, method: str, tails: TailConfig) -> np.ndarray:
    if np.isnan(values).any():
        return np.full_like(x, np.nan)
    p, v = _knots(levels, values, tails)
    if method == "spline" and len(p) > 2:
        # invert the same spline used by the inverse transform
        grid_p, grid_v = _spline_grid(p, v)
        out = np.interp(x, grid_v, grid_p)
    else:
        out = np.interp(x, v, p)

    below = x < v[0]
    above = x > v[-1]
    if tails.method == "extrapolate":
        lo, hi = _end_slopes(p, v)
        out[below] = p[0] - (v[0] - x[below]) / lo if lo > 0 else 0.0
        out[above] = p[-1] + (x[above] - v[-1]) / hi if hi > 0 else 1.0
    else:
        out[below] = 0.0
        out[above] = 1.0
    out = np.clip(out, 0.0, 1.0)
    out[np.isnan(x)] = np.nan
    return out


def _as_2d(data) -> np.ndarray:
    arr = np.asarray(data, dtype=float)
    return arr.reshape(-1, 1) if arr.ndim == 1 else arr


def _validate(method: str, tails: Optional[TailConfig]) -> TailConfig:
    if method not in PIT_METHODS:
        raise ConfigMismatch(f"PIT method must be one of {PIT_METHODS}, got {method!r}")
    if tails is None:
        return TailConfig()
    if isinstance(tails, dict):
        return TailConfig(**tails)
    return tails


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------

def pit(
    table: pd.DataFrame,
    obs: Union[Sequence[float], np.ndarray, pd.Series, pd.DataFrame],
    method: str = "linear",
    tails: Optional[TailConfig] = None,
) -> Union[np.ndarray, pd.DataFrame]:
    """
    Forward PIT: native-domain values -> probabilities.

    Parameters
    ----------
    table  : quantile table, one row per observation
    obs    : (n_rows,) observations or (n_rows, k) matrix (e.g. scenarios)
    method : "linear" or "spline"
    tails  : TailConfig (default: constant tails)

    Returns
    -------
    Array of the same shape as ``obs`` (DataFrame in, DataFrame out).
    """
    tails = _validate(method, tails)
    levels, values = quantile_matrix(table)
    x = _as_2d(obs)
    if x.shape[0] != values.shape[0]:
        raise ConfigMismatch(
            f"Observation rows ({x.shape[0]}) differ from quantile table rows ({values.shape[0]})"
        )
    out = np.vstack([
        _forward_row(x[i], levels, values[i], method, tails) for i in range(x.shape[0])
    ]) if x.shape[0] else np.empty_like(x)

    if isinstance(obs, pd.DataFrame):
        return pd.DataFrame(out, index=obs.index, columns=obs.columns)
    return out.ravel() if np.ndim(obs) == 1 else out


def pit_inverse(
    table: pd.DataFrame,
    u: Union[np.ndarray, pd.DataFrame],
    method: str = "linear",
    tails: Optional[TailConfig] = None,
) -> pd.DataFrame:
    """
    Inverse PIT: uniform samples -> native-domain values, row by row.

    Parameters
    ----------
    table  : quantile table, one row per observation
    u      : (n_rows, n_samples) uniform values in (0, 1)
    method : "linear" or "spline"
    tails  : TailConfig (default: constant tails)

    Returns
    -------
    DataFrame with the index and columns of ``u`` (sample index columns).
    """
    tails = _validate(method, tails)
    levels, values = quantile_matrix(table)
    samples = _as_2d(u)
    if samples.shape[0] != values.shape[0]:
        raise ConfigMismatch(
            f"Sample rows ({samples.shape[0]}) differ from quantile table rows ({values.shape[0]})"
        )
    finite = samples[~np.isnan(samples)]
    if finite.size and (finite.min() < 0.0 or finite.max() > 1.0):
        raise TransformFailure("Uniform samples must lie in [0, 1]")

    out = np.vstack([
        _inverse_row(samples[i], levels, values[i], method, tails) for i in range(samples.shape[0])
    ]) if samples.shape[0] else np.empty_like(samples)

    if isinstance(u, pd.DataFrame):
        return pd.DataFrame(out, index=u.index, columns=u.columns)
    return pd.DataFrame(out, index=table.index, columns=range(1, out.shape[1] + 1))
