"""copulacast.scenarios — Gaussian copula scenario generation from marginal forecasts."""

from .copula import generate_scenarios, generate_scenarios_single, sample_copula
from .covariance import copula_frame, estimate_fold_covariance
from .marginals import LocationControl, MarginalKind, ParametricMargin, QuantileTable
from .pit import TailConfig, pit, pit_inverse

__all__ = [
    "generate_scenarios",
    "generate_scenarios_single",
    "sample_copula",
    "copula_frame",
    "estimate_fold_covariance",
    "LocationControl",
    "MarginalKind",
    "ParametricMargin",
    "QuantileTable",
    "TailConfig",
    "pit",
    "pit_inverse",
]
