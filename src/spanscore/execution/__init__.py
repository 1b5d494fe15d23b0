"""Execution lifecycle: state machine, per-span pipeline, manager, worker and polling."""
