"""
MultiQR: a table of quantile forecasts, and its k-fold XGBoost fit.

One XGBoost ``reg:quantileerror`` booster is trained per quantile per fold;
every row gets an out-of-sample prediction from the booster that did not see
its fold.  Rows in a fold labelled ``"Test"`` are never used for training and
are predicted by boosters trained on all other rows.

Post-prediction monotonicity enforcement via row-wise rearrangement
(``MultiQR.sort_quantiles``).
"""

from __future__ import annotations

import logging
import warnings
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
import xgboost as xgb

from copulacast.errors import ConfigMismatch
from copulacast.scenarios.pit import level_label, parse_level

logger = logging.getLogger(__name__)

TEST_FOLD = "Test"


class MultiQR(pd.DataFrame):
    """DataFrame of quantile forecasts with columns ``q<100*level>``."""

    @property
    def _constructor(self):
        return MultiQR

    @property
    def quantiles(self) -> np.ndarray:
        return np.array(sorted(parse_level(c) for c in self.columns))

    @classmethod
    def from_array(
        cls,
        values: np.ndarray,
        quantiles: Sequence[float],
        index: Optional[pd.Index] = None,
    ) -> "MultiQR":
        values = np.asarray(values, dtype=float)
        if values.ndim != 2 or values.shape[1] != len(quantiles):
            raise ConfigMismatch(
                f"Expected (n, {len(quantiles)}) quantile values, got shape {values.shape}"
            )
        return cls(values, index=index, columns=[level_label(q) for q in quantiles])

    def sort_quantiles(self, limits: Optional[Dict[str, float]] = None) -> "MultiQR":
        """
        Rearrange each row so quantiles increase with level, then clip.

        Parameters
        ----------
        limits : optional ``{"L": lower, "U": upper}``; either key may be omitted
        """
        cols = [level_label(q) for q in self.quantiles]
        ordered = self[cols] if list(self.columns) != cols else self
        values = ordered.to_numpy(dtype=float)
        complete = ~np.isnan(values).any(axis=1)
        values[complete] = np.sort(values[complete], axis=1)
        lower, upper = (limits or {}).get("L"), (limits or {}).get("U")
        if lower is not None or upper is not None:
            values = np.clip(values, lower, upper)
        return MultiQR(values, index=self.index, columns=cols)


def assign_folds(
    data: pd.DataFrame,
    cv_folds: Optional[int] = None,
) -> np.ndarray:
    """
    Fold label per row.

    Uses ``data["kfold"]`` when present; otherwise ``cv_folds`` contiguous
    blocks labelled 1..cv_folds; otherwise a single fold labelled 1.
    """
    if "kfold" in data.columns:
        if cv_folds is not None:
            warnings.warn('Using column "kfold" from data. Argument "cv_folds" is not used.',
                          UserWarning, stacklevel=3)
        return data["kfold"].to_numpy()
    n = len(data)
    if cv_folds is None:
        return np.ones(n, dtype=int)
    if cv_folds < 1 or cv_folds > max(n, 1):
        raise ConfigMismatch(f"cv_folds must be between 1 and {n}, got {cv_folds}")
    return np.sort(np.resize(np.arange(1, cv_folds + 1), n))


def fit_multi_qr(
    data: pd.DataFrame,
    target: str,
    features: List[str],
    quantiles: Sequence[float] = (0.25, 0.5, 0.75),
    cv_folds: Optional[int] = None,
    params: Optional[Dict[str, Any]] = None,
    num_boost_round: int = 100,
    weights: Optional[np.ndarray] = None,
    sort: bool = True,
    sort_limits: Optional[Dict[str, float]] = None,
) -> MultiQR:
    """
    Out-of-sample multi-quantile forecasts under k-fold cross-validation.

    Parameters
    ----------
    data            : target and feature columns; optional ``kfold`` column
    target          : target column name (rows with a missing target are not trained on)
    features        : feature column names
    quantiles       : levels in (0, 1)
    cv_folds        : contiguous folds if ``data`` has no ``kfold`` column
    params          : extra booster parameters for ``xgboost.train``
    num_boost_round : boosting iterations per booster
    weights         : optional per-row training weights
    sort            : rearrange each predicted row to be monotone
    sort_limits     : ``{"L": lower, "U": upper}`` applied when sorting

    Returns
    -------
    MultiQR aligned to ``data.index``.
    """
    quantiles = sorted(float(q) for q in quantiles)
    missing = [c for c in [target, *features] if c not in data.columns]
    if missing:
        raise ConfigMismatch(f"Columns missing from data: {missing}")

    kfold = assign_folds(data, cv_folds)
    w = np.ones(len(data)) if weights is None else np.asarray(weights, dtype=float)
    if len(w) != len(data):
        raise ConfigMismatch(f"{len(w)} weights for {len(data)} rows")

    X = data[features]
    y = data[target].to_numpy(dtype=float)
    has_target = ~np.isnan(y)
    is_test = kfold.astype(str) == TEST_FOLD
    folds = list(pd.unique(kfold))
    single_fold = len([f for f in folds if str(f) != TEST_FOLD]) == 1

    preds = np.full((len(data), len(quantiles)), np.nan)
    base = {"tree_method": "hist", **(params or {})}

    for j, q in enumerate(quantiles):
        logger.info(f"Training quantile {q} models over {len(folds)} fold(s)...")
        booster_params = {**base, "objective": "reg:quantileerror", "quantile_alpha": q}
        for fold in folds:
            in_fold = kfold == fold
            if single_fold and str(fold) != TEST_FOLD:
                # no held-out data: train and predict in-sample
                train = has_target & ~is_test
            else:
                train = has_target & ~in_fold & ~is_test
            if not train.any():
                raise ConfigMismatch(f"No training rows for fold {fold!r}")

            dtrain = xgb.DMatrix(X[train], label=y[train], weight=w[train])
            booster = xgb.train(booster_params, dtrain, num_boost_round=num_boost_round)
            preds[in_fold, j] = booster.predict(xgb.DMatrix(X[in_fold]))

    mqr = MultiQR.from_array(preds, quantiles, index=data.index)
    if sort:
        mqr = mqr.sort_quantiles(sort_limits)
    return mqr
