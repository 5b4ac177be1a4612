"""copulacast.models — Multi-quantile forecasting under k-fold cross-validation."""

from .multi_qr import MultiQR, assign_folds, fit_multi_qr

__all__ = ["MultiQR", "assign_folds", "fit_multi_qr"]
