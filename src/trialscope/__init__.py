"""TrialScope: clinical-trials search and analytics service."""

__version__ = "0.1.0"
