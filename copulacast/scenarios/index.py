"""
Fold/time index resolution for copula sampling.

For every cross-validation fold the sampler needs the set of time keys to
draw for:

    spatial   — unique (issue_ind, horiz_ind) pairs; one draw per pair,
                components = locations
    temporal  — unique issue_ind values; one draw per issue time,
                components = locations x lead times

``SampleIndex`` then describes, row by row, which location and time key each
row of a fold's sampled block belongs to, so blocks are split by label rather
than by row arithmetic.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Sequence

import numpy as np
import pandas as pd

from copulacast.errors import ConfigMismatch, SamplingFailure
from copulacast.scenarios.marginals import LocationControl

logger = logging.getLogger(__name__)

KEY_COLS = ["issue_ind", "horiz_ind"]


# ------------------------------------------------------------------
# Validation of covariance / mean structures
# ------------------------------------------------------------------

def validate_structures(
    copula_type: str,
    sigma_kf: Mapping,
    mean_kf: Mapping,
    control: Mapping[str, LocationControl],
) -> int:
    """
    Check fold labels and dimensions of the covariance and mean maps.

    Returns the copula dimension shared by every fold.
    """
    if list(sigma_kf) != list(mean_kf):
        raise ConfigMismatch("mean_kf folds must equal sigma_kf folds, in the same order")

    n_loc = len(control)
    n_horiz = 1
    if copula_type == "temporal":
        horizons = shared_horizons(control)
        n_horiz = len(horizons)
        for name, ctrl in control.items():
            extra = set(pd.unique(ctrl.horiz_ind).tolist()) - set(horizons.tolist())
            if extra:
                raise ConfigMismatch(
                    f"{name}: lead times {sorted(extra)} are not among the shared lead "
                    f"times {horizons.tolist()} of the first location"
                )
    expected = n_loc * n_horiz

    for fold in sigma_kf:
        cov = np.asarray(sigma_kf[fold], dtype=float)
        mean = np.asarray(mean_kf[fold], dtype=float).ravel()
        if cov.ndim != 2 or cov.shape[0] != cov.shape[1]:
            raise SamplingFailure(f"Covariance for fold {fold!r} is not square: shape {cov.shape}")
        if cov.shape[0] % n_loc:
            raise ConfigMismatch(
                f"Covariance for fold {fold!r} has {cov.shape[0]} rows, not divisible "
                f"by {n_loc} location(s)"
            )
        if cov.shape[0] != expected:
            raise SamplingFailure(
                f"Covariance for fold {fold!r} has dimension {cov.shape[0]}, expected "
                f"{expected} ({n_loc} location(s) x {n_horiz} lead time(s))"
            )
        if mean.shape[0] != cov.shape[0]:
            raise SamplingFailure(
                f"Mean for fold {fold!r} has length {mean.shape[0]}, covariance "
                f"dimension is {cov.shape[0]}"
            )

    needed = set()
    for ctrl in control.values():
        needed.update(pd.unique(ctrl.kfold).tolist())
    missing = needed - set(sigma_kf)
    if missing:
        raise ConfigMismatch(f"Control folds without a covariance matrix: {sorted(map(str, missing))}")

    all_rows = pd.concat([c.control_frame() for c in control.values()], ignore_index=True)
    folds_per_issue = all_rows.groupby("issue_ind")["kfold"].nunique()
    if (folds_per_issue > 1).any():
        raise ConfigMismatch(
            "Issue times must belong to one fold across all locations: "
            f"{list(folds_per_issue[folds_per_issue > 1].index[:5])}"
        )
    return expected


def shared_horizons(control: Mapping[str, LocationControl]) -> np.ndarray:
    """Sorted lead times of the first location; shared by every location in temporal mode."""
    first = next(iter(control.values()))
    return np.sort(pd.unique(first.horiz_ind))


# ------------------------------------------------------------------
# Key resolution
# ------------------------------------------------------------------

def _fold_rows(control: Mapping[str, LocationControl], fold) -> pd.DataFrame:
    frames = []
    for ctrl in control.values():
        df = ctrl.control_frame()
        frames.append(df.loc[df["kfold"] == fold, KEY_COLS])
    return pd.concat(frames, ignore_index=True)


def resolve_spatial_keys(
    control: Mapping[str, LocationControl],
    folds: Sequence,
) -> Dict[object, pd.DataFrame]:
    """Unique (issue_ind, horiz_ind) pairs per fold across all locations, sorted."""
    keys = {}
    for fold in folds:
        rows = _fold_rows(control, fold).drop_duplicates()
        keys[fold] = rows.sort_values(KEY_COLS, kind="mergesort").reset_index(drop=True)
        logger.debug(f"Fold {fold}: {len(keys[fold])} spatial time keys")
    return keys


def resolve_temporal_keys(
    control: Mapping[str, LocationControl],
    folds: Sequence,
) -> Dict[object, pd.DataFrame]:
    """Unique issue times per fold across all locations, sorted."""
    keys = {}
    for fold in folds:
        issues = _fold_rows(control, fold)[["issue_ind"]].drop_duplicates()
        keys[fold] = issues.sort_values("issue_ind", kind="mergesort").reset_index(drop=True)
        logger.debug(f"Fold {fold}: {len(keys[fold])} issue times")
    return keys


# ------------------------------------------------------------------
# Explicit sample index
# ------------------------------------------------------------------

def build_sample_index(
    copula_type: str,
    keys: pd.DataFrame,
    locations: List[str],
    horizons: np.ndarray | None = None,
) -> pd.DataFrame:
    """
    Row labels for one fold's stacked sample block.

    The block stacks, for every time key in order, the transposed draw
    (components in rows).  Components are ordered location-major:
    ``loc1_h1, loc1_h2, ..., loc2_h1, ...``.  The returned frame has one row
    per block row with columns ``draw``, ``component``, ``location``,
    ``issue_ind`` and ``horiz_ind``.
    """
    n_keys = len(keys)
    if copula_type == "spatial":
        n_comp = len(locations)
        comp_loc = np.asarray(locations, dtype=object)
        issue = np.repeat(keys["issue_ind"].to_numpy(), n_comp)
        horiz = np.repeat(keys["horiz_ind"].to_numpy(), n_comp)
    else:
        n_h = len(horizons)
        n_comp = len(locations) * n_h
        comp_loc = np.repeat(np.asarray(locations, dtype=object), n_h)
        issue = np.repeat(keys["issue_ind"].to_numpy(), n_comp)
        horiz = np.tile(np.tile(horizons, len(locations)), n_keys)

    return pd.DataFrame({
        "draw": np.repeat(np.arange(n_keys), n_comp),
        "component": np.tile(np.arange(n_comp), n_keys),
        "location": np.tile(comp_loc, n_keys),
        "issue_ind": issue,
        "horiz_ind": horiz,
    })
