"""Models, storage, scheduling, workers and an HTTP API for machine-learning workflows."""

__version__ = "0.1.0"