"""Asynchronous route optimization job service."""

__version__ = "2.0.0"
