"""Database models."""

from .job import OptimizationJob

__all__ = ["OptimizationJob"]
