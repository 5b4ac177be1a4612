"""
Estimate per-fold Gaussian copula covariance from PIT residuals.

Given the PIT of observed values through each location's marginal, the
copula covariance is the covariance of the normal scores
``z = Phi^-1(u)``.  One matrix is estimated per cross-validation fold from
the rows of every *other* fold, so a fold's scenarios never use its own
observations.  Ledoit-Wolf shrinkage keeps the estimate well conditioned
when the number of issue times is small relative to the dimension.
"""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.stats import norm
from sklearn.covariance import LedoitWolf

from copulacast.errors import ConfigMismatch
from copulacast.scenarios.index import shared_horizons
from copulacast.scenarios.marginals import LocationControl

logger = logging.getLogger(__name__)


def copula_frame(
    copula_type: str,
    pit_values: Mapping[str, Sequence[float]],
    control: Mapping[str, LocationControl],
) -> Tuple[pd.DataFrame, np.ndarray]:
    """
    Lay PIT values out with one column per copula dimension.

    spatial  : rows (issue_ind, horiz_ind), columns = locations
    temporal : rows issue_ind, columns = (location, horiz_ind), location-major

    Returns the wide frame and the fold label of each of its rows.
    """
    if list(pit_values) != list(control):
        raise ConfigMismatch("pit_values must be named and ordered like control")

    long = []
    for name, ctrl in control.items():
        u = np.asarray(pit_values[name], dtype=float)
        if len(u) != len(ctrl):
            raise ConfigMismatch(f"{name}: {len(u)} PIT values for {len(ctrl)} control rows")
        df = ctrl.control_frame().drop(columns="sort_ind")
        df["location"] = name
        df["u"] = u
        long.append(df)
    long = pd.concat(long, ignore_index=True)

    if copula_type == "spatial":
        wide = long.pivot_table(index=["issue_ind", "horiz_ind"], columns="location",
                                values="u", aggfunc="first")
        wide = wide[list(control)]
        folds = long.groupby(["issue_ind", "horiz_ind"])["kfold"].first()
    else:
        wide = long.pivot_table(index="issue_ind", columns=["location", "horiz_ind"],
                                values="u", aggfunc="first")
        horizons = shared_horizons(control)
        wide = wide.reindex(columns=pd.MultiIndex.from_tuples(
            [(name, h) for name in control for h in horizons], names=["location", "horiz_ind"]
        ))
        folds = long.groupby("issue_ind")["kfold"].first()
    return wide, folds.reindex(wide.index).to_numpy()


def _to_correlation_psd(cov: np.ndarray, eps: float = 1e-6) -> np.ndarray:
    cov = (cov + cov.T) / 2.0
    eigvals, eigvecs = np.linalg.eigh(cov)
    eigvals = np.maximum(eigvals, eps)
    cov = eigvecs @ np.diag(eigvals) @ eigvecs.T
    d = np.sqrt(np.diag(cov))
    corr = cov / np.outer(d, d)
    np.fill_diagonal(corr, 1.0)
    return corr


def estimate_fold_covariance(
    u_frame: pd.DataFrame,
    kfold: Sequence,
    shrinkage: bool = True,
    clip: float = 1e-4,
    exclude: Sequence = ("Test",),
) -> Tuple[Dict[object, np.ndarray], Dict[object, np.ndarray]]:
    """
    Cross-validated copula covariance per fold.

    Parameters
    ----------
    u_frame   : (n_rows, dim) PIT values, e.g. from ``copula_frame``
    kfold     : fold label per row of ``u_frame``
    shrinkage : Ledoit-Wolf shrinkage (otherwise the empirical covariance)
    clip      : PIT values are clipped to [clip, 1 - clip] before Phi^-1
    exclude   : fold labels never used to estimate other folds' matrices

    Returns
    -------
    (sigma_kf, mean_kf) — unit-diagonal PSD matrices and zero means, keyed by fold.
    """
    kfold = np.asarray(kfold)
    if len(kfold) != len(u_frame):
        raise ConfigMismatch(f"{len(kfold)} fold labels for {len(u_frame)} rows")

    z = norm.ppf(np.clip(u_frame.to_numpy(dtype=float), clip, 1.0 - clip))
    complete = ~np.isnan(z).any(axis=1)
    dim = z.shape[1]

    sigma_kf, mean_kf = {}, {}
    folds = list(pd.unique(kfold))
    for fold in folds:
        train = complete & (kfold != fold) & ~pd.Series(kfold).isin(list(exclude)).to_numpy()
        if len(folds) == 1 or not train.any():
            train = complete
        if train.sum() < 2:
            raise ConfigMismatch(f"Fold {fold!r}: fewer than two complete rows to estimate covariance")

        if shrinkage:
            cov = LedoitWolf().fit(z[train]).covariance_
        else:
            cov = np.atleast_2d(np.cov(z[train], rowvar=False))
        sigma_kf[fold] = _to_correlation_psd(cov)
        mean_kf[fold] = np.zeros(dim)
        logger.debug(f"Fold {fold}: covariance from {int(train.sum())} rows, dim {dim}")
    return sigma_kf, mean_kf
