"""
Reassemble per-fold sample blocks into one table per location.

Blocks are concatenated and sorted by (issue_ind, horiz_ind), then joined to
the location's control index so that the output rows line up one-to-one with
the rows of the location's marginal.
"""

from __future__ import annotations

import logging
from typing import Iterable, List

import pandas as pd

from copulacast.errors import ConfigMismatch
from copulacast.scenarios.index import KEY_COLS
from copulacast.scenarios.marginals import LocationControl

logger = logging.getLogger(__name__)


def stack_blocks(blocks: Iterable[pd.DataFrame]) -> pd.DataFrame:
    """Concatenate fold blocks and sort by (issue_ind, horiz_ind); keys must be unique."""
    blocks = [b for b in blocks if len(b)]
    if not blocks:
        return pd.DataFrame(columns=KEY_COLS)
    stacked = pd.concat(blocks, ignore_index=True)
    stacked = stacked.sort_values(KEY_COLS, kind="mergesort").reset_index(drop=True)
    if stacked.duplicated(KEY_COLS).any():
        dupes = stacked.loc[stacked.duplicated(KEY_COLS), KEY_COLS].head(5)
        raise ConfigMismatch(
            "Sampled time keys are duplicated across folds: "
            f"{list(dupes.itertuples(index=False, name=None))}"
        )
    return stacked


def reassemble(
    name: str,
    blocks: Iterable[pd.DataFrame],
    control: LocationControl,
    sample_cols: List,
    allow_unmatched: bool = False,
) -> pd.DataFrame:
    """
    Align one location's samples with its control rows.

    Parameters
    ----------
    name            : location name (for messages)
    blocks          : the location's sample block from every fold
    control         : the location's control index
    sample_cols     : sample column labels (1..n_samples)
    allow_unmatched : keep control rows with no sampled key as all-NaN rows
                      instead of raising ConfigMismatch

    Returns
    -------
    DataFrame with index 0..n_rows-1 in control order and ``sample_cols`` columns.
    """
    stacked = stack_blocks(blocks)
    ids = control.control_frame()[[*KEY_COLS, "sort_ind"]]
    if stacked.empty:
        merged = ids.reindex(columns=[*ids.columns, *sample_cols])
    else:
        merged = ids.merge(stacked, on=KEY_COLS, how="left", validate="many_to_one")
        merged = merged.sort_values("sort_ind", kind="mergesort")

    missing = merged[sample_cols].isna().all(axis=1).to_numpy()
    if missing.any():
        msg = f"{name}: {int(missing.sum())} control row(s) have no sampled time key"
        if not allow_unmatched:
            raise ConfigMismatch(msg)
        logger.warning(msg)

    out = merged[sample_cols].reset_index(drop=True)
    out.columns = list(sample_cols)
    return out
