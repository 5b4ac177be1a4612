"""copulacast.evaluation — Probabilistic forecast evaluation metrics."""

from .pinball_loss import (
    avg_pinball_loss,
    crps_from_quantiles,
    pinball_loss,
    pinball_table,
    reliability,
)

__all__ = [
    "avg_pinball_loss",
    "crps_from_quantiles",
    "pinball_loss",
    "pinball_table",
    "reliability",
]
