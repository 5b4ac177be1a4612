"""
Marginal distributions and per-location control for scenario generation.

A marginal is one of two kinds, selected once per call:

    QuantileTable     — rows of predictive quantiles (e.g. a MultiQR)
    ParametricMargin  — rows of distribution parameters + a quantile function

``LocationControl`` carries the cross-validation fold, issue time and lead
time of every row of the matching marginal, plus the settings needed to take
uniform samples back to that marginal's domain.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from copulacast.errors import ConfigMismatch
from copulacast.scenarios.pit import PIT_METHODS, TailConfig, parse_level


class MarginalKind(str, Enum):
    QUANTILE_TABLE = "quantile_table"
    PARAMETRIC = "parametric"


@dataclass
class QuantileTable:
    """Quantile forecasts: one column per level, one row per observation."""

    frame: pd.DataFrame
    kind: MarginalKind = field(default=MarginalKind.QUANTILE_TABLE, init=False)

    def __post_init__(self) -> None:
        if not isinstance(self.frame, pd.DataFrame):
            self.frame = pd.DataFrame(self.frame)
        # validates every column label
        self.levels

    @property
    def levels(self) -> List[float]:
        return sorted(parse_level(c) for c in self.frame.columns)

    def __len__(self) -> int:
        return len(self.frame)


@dataclass
class ParametricMargin:
    """
    Distribution parameters per observation plus a vectorised quantile function.

    ``quantile_fn(p, **params)`` receives the probabilities positionally and
    each parameter column as a keyword array, e.g. ``scipy.stats.norm.ppf``
    with columns ``loc`` and ``scale``.
    """

    params: pd.DataFrame
    quantile_fn: Optional[Callable[..., np.ndarray]] = None
    kind: MarginalKind = field(default=MarginalKind.PARAMETRIC, init=False)

    def __post_init__(self) -> None:
        if not isinstance(self.params, pd.DataFrame):
            self.params = pd.DataFrame(self.params)

    def __len__(self) -> int:
        return len(self.params)


Marginal = (QuantileTable, ParametricMargin)


def as_marginal(obj) -> "QuantileTable | ParametricMargin":
    """Wrap a bare DataFrame (e.g. a MultiQR) as a QuantileTable."""
    if isinstance(obj, Marginal):
        return obj
    if isinstance(obj, pd.DataFrame):
        return QuantileTable(obj)
    raise ConfigMismatch(
        f"Cannot use {type(obj).__name__} as a marginal; expected a quantile "
        f"table or ParametricMargin"
    )


def marginal_kind(marginals: Mapping[str, object]) -> MarginalKind:
    """The single kind shared by every location; mixed kinds are rejected."""
    kinds = {name: m.kind for name, m in marginals.items()}
    unique = set(kinds.values())
    if len(unique) != 1:
        raise ConfigMismatch(
            f"All marginals must be of the same kind, got {sorted(k.value for k in unique)}"
        )
    return unique.pop()


@dataclass
class LocationControl:
    """
    Row index and transform settings for one location.

    Attributes:
        kfold: Cross-validation fold label of every row
        issue_ind: Forecast issue time of every row
        horiz_ind: Lead time of every row
        pit_method: PIT interpolation for quantile-table marginals
        cdf_tails: Tail handling for quantile-table marginals
        quantile_fn: Quantile function for parametric marginals (overrides
            the marginal's own)
    """

    kfold: Sequence
    issue_ind: Sequence
    horiz_ind: Sequence
    pit_method: str = "linear"
    cdf_tails: Optional[TailConfig] = None
    quantile_fn: Optional[Callable[..., np.ndarray]] = None

    def __post_init__(self) -> None:
        self.kfold = np.asarray(self.kfold)
        self.issue_ind = pd.Series(self.issue_ind).to_numpy()
        self.horiz_ind = np.asarray(self.horiz_ind)
        if isinstance(self.cdf_tails, dict):
            self.cdf_tails = TailConfig(**self.cdf_tails)
        lengths = {len(self.kfold), len(self.issue_ind), len(self.horiz_ind)}
        if len(lengths) != 1:
            raise ConfigMismatch(
                f"kfold, issue_ind and horiz_ind lengths differ: "
                f"{len(self.kfold)}, {len(self.issue_ind)}, {len(self.horiz_ind)}"
            )
        if self.pit_method not in PIT_METHODS:
            raise ConfigMismatch(f"Unknown PIT method {self.pit_method!r}")

    def __len__(self) -> int:
        return len(self.kfold)

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        kfold: str = "kfold",
        issue: str = "issue_time",
        horizon: str = "lead_time",
        **kwargs,
    ) -> "LocationControl":
        return cls(kfold=df[kfold], issue_ind=df[issue], horiz_ind=df[horizon], **kwargs)

    def control_frame(self) -> pd.DataFrame:
        """Control index with the original row position in ``sort_ind``."""
        return pd.DataFrame({
            "kfold": self.kfold,
            "issue_ind": self.issue_ind,
            "horiz_ind": self.horiz_ind,
            "sort_ind": np.arange(len(self.kfold)),
        })

    def check_issue_folds(self, name: str = "") -> None:
        """Every issue time must belong to exactly one fold."""
        folds_per_issue = self.control_frame().groupby("issue_ind")["kfold"].nunique()
        shared = folds_per_issue[folds_per_issue > 1]
        if len(shared):
            raise ConfigMismatch(
                f"Issue times appear under more than one fold{f' for {name}' if name else ''}: "
                f"{list(shared.index[:5])}"
            )


def validate_inputs(
    marginals: Mapping[str, object],
    control: Mapping[str, LocationControl],
) -> Dict[str, "QuantileTable | ParametricMargin"]:
    """
    Check names, order and row counts of marginals against control.

    Returns the marginals with bare DataFrames wrapped as QuantileTables.
    """
    if len(marginals) != len(control):
        raise ConfigMismatch(
            f"control has {len(control)} location(s) but marginals has {len(marginals)}"
        )
    if list(marginals) != list(control):
        raise ConfigMismatch("control must be named and in the same order as marginals")

    wrapped = {name: as_marginal(m) for name, m in marginals.items()}
    for name, margin in wrapped.items():
        ctrl = control[name]
        if not isinstance(ctrl, LocationControl):
            raise ConfigMismatch(f"control[{name!r}] must be a LocationControl")
        if len(ctrl) != len(margin):
            raise ConfigMismatch(
                f"{name}: control has {len(ctrl)} rows but the marginal has {len(margin)}"
            )
        ctrl.check_issue_folds(name)
        if isinstance(margin, ParametricMargin) and (ctrl.quantile_fn or margin.quantile_fn) is None:
            raise ConfigMismatch(f"{name}: parametric marginal needs a quantile function")
    return wrapped
