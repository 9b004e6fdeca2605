"""Confidence-scored classification and matching engine for personal finance."""

from finmatch.engine import ClassificationEngine

__version__ = "0.1.0"

__all__ = ["ClassificationEngine"]
