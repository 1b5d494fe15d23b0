"""Read-side aggregation over an evaluator's execution history."""

from spanscore.evaluation.analytics import compute_analytics

__all__ = ["compute_analytics"]
