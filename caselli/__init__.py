"""Caselli agent core: an AI coworker for real-estate agents."""

__version__ = "0.1.0"
