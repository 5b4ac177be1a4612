"""
Error taxonomy for scenario generation.

ConfigMismatch     — inconsistent marginals / control / covariance / mean inputs
InvalidCopulaType  — copula type outside {"spatial", "temporal"}
SamplingFailure    — covariance not PSD or of the wrong dimension
TransformFailure   — PIT inverse or quantile function failed for a location
"""

from __future__ import annotations


class CopulaCastError(Exception):
    """Base class for all copulacast errors."""


class ConfigMismatch(CopulaCastError, ValueError):
    """Lengths, orders or names disagree between inputs."""


class InvalidCopulaType(CopulaCastError, ValueError):
    """Copula type is not one of the supported layouts."""


class SamplingFailure(CopulaCastError, RuntimeError):
    """Multivariate Gaussian draw could not be produced."""


class TransformFailure(CopulaCastError, RuntimeError):
    """Uniform samples could not be mapped back to the marginal domain."""

    def __init__(self, message: str, location: str | None = None):
        super().__init__(message)
        self.location = location
