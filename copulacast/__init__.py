"""
copulacast — quantile forecasts and Gaussian copula scenario generation.

    models      — MultiQR tables and the k-fold multi-quantile XGBoost fit
    evaluation  — pinball loss, reliability, CRPS
    scenarios   — PIT, copula sampling and scenario reassembly
"""

from copulacast.config import MQRConfig, ScenarioConfig, configure_logging
from copulacast.errors import (
    ConfigMismatch,
    CopulaCastError,
    InvalidCopulaType,
    SamplingFailure,
    TransformFailure,
)
from copulacast.models import MultiQR, fit_multi_qr
from copulacast.scenarios import (
    LocationControl,
    ParametricMargin,
    QuantileTable,
    TailConfig,
    generate_scenarios,
    pit,
    pit_inverse,
)

__version__ = "0.1.0"

__all__ = [
    "MQRConfig",
    "ScenarioConfig",
    "configure_logging",
    "ConfigMismatch",
    "CopulaCastError",
    "InvalidCopulaType",
    "SamplingFailure",
    "TransformFailure",
    "MultiQR",
    "fit_multi_qr",
    "LocationControl",
    "ParametricMargin",
    "QuantileTable",
    "TailConfig",
    "generate_scenarios",
    "pit",
    "pit_inverse",
]
