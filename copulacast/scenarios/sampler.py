"""
Gaussian copula sampler.

For one fold:
    1. Z ~ N(mean, Sigma), ``n_samples`` rows, once per time key
    2. transpose so components are rows and samples are columns
    3. U = Phi(Z)  (standard normal CDF, uniform domain)
    4. label every row with its (location, issue_ind, horiz_ind) and split
       the block by location

Per-fold random streams come from ``derive_fold_seed`` so that the result
does not depend on how folds are scheduled across workers.
"""

from __future__ import annotations

import logging
import zlib
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from scipy.stats import norm

from copulacast.errors import SamplingFailure
from copulacast.scenarios.index import build_sample_index

logger = logging.getLogger(__name__)


def derive_fold_seed(base_seed: Optional[int], fold) -> Optional[np.random.SeedSequence]:
    """
    Deterministic sub-seed for a fold: SeedSequence([base_seed, crc32(fold)]).

    The hashed key includes the label's type, so ``1`` and ``"1"`` get
    different streams.  ``None`` leaves the fold stream unseeded
    (non-reproducible draws).
    """
    if base_seed is None:
        return None
    fold_key = zlib.crc32(f"{type(fold).__name__}:{fold}".encode("utf-8"))
    return np.random.SeedSequence([int(base_seed), fold_key])


def check_psd(cov: np.ndarray, fold=None, tol: float = 1e-8) -> np.ndarray:
    """Return ``cov`` as a symmetric float matrix, or raise SamplingFailure."""
    cov = np.asarray(cov, dtype=float)
    if not np.all(np.isfinite(cov)):
        raise SamplingFailure(f"Covariance for fold {fold!r} has non-finite entries")
    if not np.allclose(cov, cov.T, atol=1e-10):
        raise SamplingFailure(f"Covariance for fold {fold!r} is not symmetric")
    try:
        eigvals = np.linalg.eigvalsh(cov)
    except np.linalg.LinAlgError as exc:
        raise SamplingFailure(f"Eigen-decomposition failed for fold {fold!r}") from exc
    scale = max(1.0, float(np.max(np.abs(eigvals))))
    if eigvals.min() < -tol * scale:
        raise SamplingFailure(
            f"Covariance for fold {fold!r} is not positive semi-definite "
            f"(min eigenvalue {eigvals.min():.3g})"
        )
    return cov


def draw_fold(
    copula_type: str,
    fold,
    keys: pd.DataFrame,
    mean: np.ndarray,
    cov: np.ndarray,
    n_samples: int,
    locations: List[str],
    horizons: Optional[np.ndarray] = None,
    seed: Optional[np.random.SeedSequence] = None,
    return_gaussian: bool = False,
) -> Dict[str, pd.DataFrame]:
    """
    Sample one fold and split it by location.

    Parameters
    ----------
    copula_type : "spatial" or "temporal"
    fold        : fold label (for messages)
    keys        : time keys from the index resolver, one draw per row
    mean, cov   : fold mean vector and covariance matrix
    n_samples   : number of scenarios
    locations   : location names in covariance order
    horizons    : shared lead times (temporal only)
    seed        : SeedSequence for this fold
    return_gaussian : keep the Gaussian draws instead of mapping through Phi

    Returns
    -------
    {location: DataFrame[issue_ind, horiz_ind, 1..n_samples]}
    """
    cov = check_psd(cov, fold)
    mean = np.asarray(mean, dtype=float).ravel()
    rng = np.random.default_rng(seed)
    n_keys = len(keys)

    if n_keys == 0:
        empty = pd.DataFrame(columns=["issue_ind", "horiz_ind", *range(1, n_samples + 1)])
        return {loc: empty.copy() for loc in locations}

    try:
        # (n_keys, n_samples, dim): one independent draw of n_samples per time key
        z = rng.multivariate_normal(mean, cov, size=(n_keys, n_samples), method="eigh")
    except (np.linalg.LinAlgError, ValueError) as exc:
        raise SamplingFailure(f"Multivariate normal draw failed for fold {fold!r}: {exc}") from exc

    # components in rows, samples in columns, keys stacked
    block = np.transpose(z, (0, 2, 1)).reshape(n_keys * cov.shape[0], n_samples)
    if not return_gaussian:
        block = norm.cdf(block)

    index = build_sample_index(copula_type, keys, locations, horizons)
    samples = pd.DataFrame(block, columns=range(1, n_samples + 1))
    logger.debug(f"Fold {fold}: drew {n_keys} x {n_samples} samples of dimension {cov.shape[0]}")

    out = {}
    for loc in locations:
        mask = (index["location"] == loc).to_numpy()
        part = pd.concat(
            [index.loc[mask, ["issue_ind", "horiz_ind"]].reset_index(drop=True),
             samples.loc[mask].reset_index(drop=True)],
            axis=1,
        )
        out[loc] = part
    return out
