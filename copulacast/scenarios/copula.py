"""
Multivariate scenario generation with a Gaussian copula.

Independent per-location marginal forecasts (quantile tables or parametric
distributions) are tied together by a spatial, temporal or spatio-temporal
Gaussian copula whose covariance is supplied per cross-validation fold.

Pipeline:
    1. Validate marginals, control, covariance and mean maps (no sampling
       happens if anything is inconsistent)
    2. Resolve the time keys each fold must be sampled for
    3. Draw correlated uniforms per fold (worker pool over folds)
    4. Reassemble each location's samples in its control row order
    5. Transform to each marginal's domain (worker pool over locations)

Covariance layout: rows/columns ordered ``loc1_h1, loc1_h2, ..., loc2_h1,
...`` (location-major), with locations in the order of ``marginals``.
Spatio-temporal scenarios use ``copula_type="temporal"`` with several
locations; every location must then share the same lead times.
"""

from __future__ import annotations

import logging
import warnings
from typing import Dict, Mapping, Optional

import pandas as pd
from joblib import Parallel, delayed

from copulacast.errors import ConfigMismatch, CopulaCastError, InvalidCopulaType, SamplingFailure
from copulacast.scenarios.index import (
    resolve_spatial_keys,
    resolve_temporal_keys,
    shared_horizons,
    validate_structures,
)
from copulacast.scenarios.marginals import LocationControl, marginal_kind, validate_inputs
from copulacast.scenarios.reassemble import reassemble
from copulacast.scenarios.sampler import derive_fold_seed, draw_fold
from copulacast.scenarios.transform import transform_to_domain

logger = logging.getLogger(__name__)

COPULA_TYPES = ("spatial", "temporal")


def _check_type(copula_type: str) -> None:
    if copula_type not in COPULA_TYPES:
        raise InvalidCopulaType(
            f"copula type mis-specified: {copula_type!r}, expected one of {COPULA_TYPES}"
        )


def _check_jobs(n_jobs: int) -> None:
    if n_jobs != 1:
        warnings.warn(
            f"n_jobs={n_jobs}: tasks run on a thread pool; process-based pools "
            "are not safe on every platform",
            UserWarning,
            stacklevel=3,
        )


def sample_copula(
    copula_type: str,
    n_samples: int,
    control: Mapping[str, LocationControl],
    sigma_kf: Mapping,
    mean_kf: Mapping,
    n_jobs: int = 1,
    seed: Optional[int] = None,
    allow_unmatched: bool = False,
    gaussian: bool = False,
) -> Dict[str, pd.DataFrame]:
    """
    Correlated samples per location, aligned to each control's row order.

    Returns uniform-domain samples, or the raw Gaussian draws when
    ``gaussian`` is True.  Columns are the sample index 1..n_samples.
    """
    _check_type(copula_type)
    validate_structures(copula_type, sigma_kf, mean_kf, control)

    folds = list(sigma_kf)
    locations = list(control)
    if copula_type == "spatial":
        keys = resolve_spatial_keys(control, folds)
        horizons = None
    else:
        keys = resolve_temporal_keys(control, folds)
        horizons = shared_horizons(control)

    logger.info(f"Sampling {n_samples} {copula_type} scenarios over {len(folds)} fold(s)")
    try:
        fold_samples = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(draw_fold)(
                copula_type,
                fold,
                keys[fold],
                mean_kf[fold],
                sigma_kf[fold],
                n_samples,
                locations,
                horizons,
                derive_fold_seed(seed, fold),
                gaussian,
            )
            for fold in folds
        )
    except CopulaCastError:
        raise
    except Exception as exc:
        raise SamplingFailure(f"Sampling failed: {exc}") from exc

    sample_cols = list(range(1, n_samples + 1))
    return {
        name: reassemble(
            name,
            [block[name] for block in fold_samples],
            control[name],
            sample_cols,
            allow_unmatched=allow_unmatched,
        )
        for name in locations
    }


def generate_scenarios(
    copula_type: str,
    n_samples: int,
    marginals: Mapping[str, object],
    sigma_kf: Mapping,
    mean_kf: Mapping,
    control: Mapping[str, LocationControl],
    n_jobs: int = 1,
    seed: Optional[int] = None,
    allow_unmatched: bool = False,
) -> Dict[str, pd.DataFrame]:
    """
    Scenario forecasts in each marginal's domain.

    Parameters
    ----------
    copula_type : "spatial" or "temporal"
    n_samples   : number of scenarios per row
    marginals   : {location: QuantileTable | ParametricMargin | DataFrame}, ordered
                  like the covariance rows/columns; all of one kind
    sigma_kf    : {fold: covariance matrix}
    mean_kf     : {fold: mean vector}, same folds in the same order
    control     : {location: LocationControl}, same names/order as ``marginals``
    n_jobs      : worker pool width for folds and locations
    seed        : base seed; per-fold seeds are derived from it
    allow_unmatched : keep control rows without a sampled key as NaN rows

    Returns
    -------
    {location: DataFrame} with one row per marginal row (same order) and
    columns 1..n_samples.
    """
    _check_type(copula_type)
    n_samples = int(n_samples)
    if n_samples < 1:
        raise ConfigMismatch("n_samples must be at least 1")
    _check_jobs(n_jobs)

    wrapped = validate_inputs(marginals, control)
    kind = marginal_kind(wrapped)

    samples = sample_copula(
        copula_type, n_samples, control, sigma_kf, mean_kf,
        n_jobs=n_jobs, seed=seed, allow_unmatched=allow_unmatched,
    )
    return transform_to_domain(kind, wrapped, samples, control, n_jobs=n_jobs)


def generate_scenarios_single(
    copula_type: str,
    n_samples: int,
    marginal,
    sigma_kf: Mapping,
    mean_kf: Mapping,
    control: LocationControl,
    name: str = "loc_1",
    **kwargs,
) -> pd.DataFrame:
    """Single-location convenience wrapper around ``generate_scenarios``."""
    warnings.warn("1 location detected: margin coerced to a named mapping", UserWarning, stacklevel=2)
    out = generate_scenarios(
        copula_type, n_samples, {name: marginal}, sigma_kf, mean_kf, {name: control}, **kwargs
    )
    return out[name]
