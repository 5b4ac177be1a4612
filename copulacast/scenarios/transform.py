"""
Map uniform-domain scenarios back to each location's marginal domain.

Quantile-table marginals go through the inverse PIT; parametric marginals go
through their quantile function.  The branch is chosen once per call from
the (uniform) marginal kind.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Mapping

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from copulacast.errors import CopulaCastError, TransformFailure
from copulacast.scenarios.marginals import (
    LocationControl,
    MarginalKind,
    ParametricMargin,
    QuantileTable,
)
from copulacast.scenarios.pit import pit_inverse

logger = logging.getLogger(__name__)


def quantile_table_to_domain(
    name: str,
    margin: QuantileTable,
    samples: pd.DataFrame,
    control: LocationControl,
) -> pd.DataFrame:
    """Inverse PIT of one location's uniform samples through its quantile table."""
    table = margin.frame.reset_index(drop=True)
    try:
        return pit_inverse(table, samples, method=control.pit_method, tails=control.cdf_tails)
    except TransformFailure as exc:
        raise TransformFailure(f"{name}: {exc}", location=name) from exc


def parametric_to_domain(
    name: str,
    margin: ParametricMargin,
    samples: pd.DataFrame,
    control: LocationControl,
) -> pd.DataFrame:
    """Evaluate ``quantile_fn(u, **params)`` for every sample column, row-aligned to the parameters."""
    q_fun: Callable[..., np.ndarray] = control.quantile_fn or margin.quantile_fn
    params = {col: margin.params[col].to_numpy() for col in margin.params.columns}
    out = {}
    for col in samples.columns:
        u = samples[col].to_numpy(dtype=float)
        try:
            values = np.asarray(q_fun(u, **params), dtype=float)
        except Exception as exc:
            raise TransformFailure(
                f"{name}: quantile function failed on sample {col}: {exc}", location=name
            ) from exc
        if values.shape != u.shape:
            raise TransformFailure(
                f"{name}: quantile function returned shape {values.shape}, expected {u.shape}",
                location=name,
            )
        out[col] = values
    return pd.DataFrame(out, index=samples.index)


TRANSFORMS = {
    MarginalKind.QUANTILE_TABLE: quantile_table_to_domain,
    MarginalKind.PARAMETRIC: parametric_to_domain,
}


def transform_to_domain(
    kind: MarginalKind,
    marginals: Mapping[str, object],
    samples: Mapping[str, pd.DataFrame],
    control: Mapping[str, LocationControl],
    n_jobs: int = 1,
) -> Dict[str, pd.DataFrame]:
    """
    Transform every location independently, ``n_jobs`` at a time.

    The first failing location aborts the call with its TransformFailure.
    """
    fn = TRANSFORMS[kind]
    logger.info("Transforming samples into original domain")
    names = list(marginals)
    try:
        results = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(fn)(name, marginals[name], samples[name], control[name]) for name in names
        )
    except CopulaCastError:
        raise
    except Exception as exc:
        raise TransformFailure(f"Domain transform failed: {exc}") from exc
    return dict(zip(names, results))
