"""Aggregate analytics models."""

from typing import Literal

from pydantic import BaseModel


class CountryStat(BaseModel):
    """Trial count for one country."""

    name: str
    value: int
    percentage: str  # one decimal, e.g. "42.3"
    flag: str
    description: str


class StatusStat(BaseModel):
    """Trial count for one overall status."""

    name: str
    value: int
    percentage: str
    raw_status: str | None = None
    description: str


class PhaseStat(BaseModel):
    """Trial count for one phase, or the grand total row."""

    name: str
    value: int
    percentage: str
    type: Literal["phase", "total"] = "phase"
    description: str | None = None


class PhaseDistributionRow(BaseModel):
    name: str
    value: int
    percentage: str
    description: str


class PhaseDistribution(BaseModel):
    """How many studies carry one, two, ... phase designations."""

    distribution: list[PhaseDistributionRow] = []
    total_studies: int = 0
    source: str
    last_updated: str
    min_size: int | None = None
    max_size: int | None = None
    unique_sizes_count: int | None = None

