"""Mutation pipeline package."""

from expense_tracker.mutations.pipeline import ChangeListener, MutationPipeline

__all__ = ["ChangeListener", "MutationPipeline"]
