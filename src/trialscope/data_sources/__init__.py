"""Upstream data source clients."""

from trialscope.data_sources.base_client import DataSourceError, TrialNotFoundError
from trialscope.data_sources.clinical_trials import ClinicalTrialsClient

__all__ = ["ClinicalTrialsClient", "DataSourceError", "TrialNotFoundError"]
