"""spanscore - evaluator targeting, scoring and execution lifecycle for LLM spans."""

__version__ = "0.1.0"
