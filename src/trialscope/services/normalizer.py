"""
Result normalizer: ClinicalTrials.gov v2 study record -> Trial.

Every upstream section is optional. Missing values collapse to fixed
sentinels here so nothing downstream has to walk nested optional dicts.
"""

from __future__ import annotations

from typing import Any

from trialscope.constants import (
    NOT_APPLICABLE_ALIASES,
    NOT_APPLICABLE_PHASE,
    NOT_SPECIFIED,
    PHASE_LABELS,
    UNKNOWN_STATUS,
)
from trialscope.models.model_clinical_trials import Location, Trial


def _text(value: Any, default: str = NOT_SPECIFIED) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return default


def _section(parent: dict[str, Any], name: str) -> dict[str, Any]:
    value = parent.get(name)
    return value if isinstance(value, dict) else {}


def _extract_date(date_struct: Any) -> str | None:
    """Extract date string from v2 date struct like {'date': '2021-03-15'}."""
    if not isinstance(date_struct, dict):
        return None
    return date_struct.get("date") or None


def _dedupe(values: list[str]) -> tuple[str, ...]:
    """Drop blanks and duplicates, keeping first-seen order."""
    seen: dict[str, None] = {}
    for value in values:
        if isinstance(value, str) and value.strip():
            seen.setdefault(value.strip(), None)
    return tuple(seen)


def phase_label(code: str) -> str:
    """Map a v2 phase code ('PHASE2') to its display label ('Phase 2')."""
    if code.strip().lower() in NOT_APPLICABLE_ALIASES:
        return NOT_APPLICABLE_PHASE
    return PHASE_LABELS.get(code, code)


def normalize_phases(phases: Any) -> tuple[str, ...]:
    """Convert v2 phase list like ['PHASE2', 'PHASE3'] -> ('Phase 2', 'Phase 3')."""
    if not isinstance(phases, list):
        return ()
    return _dedupe([phase_label(p) for p in phases if isinstance(p, str)])


def normalize_study(study: dict[str, Any]) -> Trial:
    """Build a Trial from one raw v2 study record."""
    proto = _section(study, "protocolSection")
    ident = _section(proto, "identificationModule")
    status = _section(proto, "statusModule")
    conditions_mod = _section(proto, "conditionsModule")
    design = _section(proto, "designModule")
    contacts = _section(proto, "contactsLocationsModule")
    sponsors = _section(proto, "sponsorCollaboratorsModule")
    desc = _section(proto, "descriptionModule")
    eligibility = _section(proto, "eligibilityModule")

    raw_locations = [
        loc for loc in contacts.get("locations") or [] if isinstance(loc, dict)
    ]
    locations = tuple(
        Location(
            facility=loc.get("facility") or "",
            city=loc.get("city") or "",
            state=loc.get("state") or "",
            country=loc.get("country") or "",
            zip=loc.get("zip") or "",
        )
        for loc in raw_locations
    )
    countries = _dedupe([loc.get("country") for loc in raw_locations])

    conditions = _dedupe(conditions_mod.get("conditions") or [])
    phases = normalize_phases(design.get("phases"))

    enrollment = _section(design, "enrollmentInfo").get("count")
    if not isinstance(enrollment, int) or enrollment < 0:
        enrollment = 0

    brief_title = _text(ident.get("briefTitle"))

    return Trial(
        nct_id=_text(ident.get("nctId"), default=""),
        title=brief_title,
        official_title=_text(ident.get("officialTitle"), default=brief_title),
        status=_text(status.get("overallStatus"), default=UNKNOWN_STATUS),
        phase=", ".join(phases) if phases else NOT_APPLICABLE_PHASE,
        phases=phases,
        condition=", ".join(conditions) if conditions else NOT_SPECIFIED,
        conditions=conditions,
        country=", ".join(countries) if countries else NOT_SPECIFIED,
        countries=countries,
        sponsor=_text(_section(sponsors, "leadSponsor").get("name")),
        enrollment_count=enrollment,
        study_type=_text(design.get("studyType")),
        start_date=_extract_date(status.get("startDateStruct")),
        completion_date=_extract_date(status.get("completionDateStruct")),
        last_update_date=_extract_date(status.get("lastUpdatePostDateStruct")),
        brief_summary=_text(desc.get("briefSummary")),
        detailed_description=_text(desc.get("detailedDescription")),
        locations=locations,
        eligibility_criteria=_text(eligibility.get("eligibilityCriteria")),
        minimum_age=_text(eligibility.get("minimumAge")),
        maximum_age=_text(eligibility.get("maximumAge")),
        sex=_text(eligibility.get("sex"), default="ALL"),
    )


# ------------------------------------------------------------------
# Phase predicates
# ------------------------------------------------------------------


def is_not_applicable_phase(trial: Trial) -> bool:
    """True when the trial carries no real phase designation."""
    return all(p == NOT_APPLICABLE_PHASE for p in trial.phases)


def is_multi_phase(trial: Trial) -> bool:
    real = [p for p in trial.phases if p != NOT_APPLICABLE_PHASE]
    return len(real) > 1


def has_exact_phase(trial: Trial, label: str) -> bool:
    """True only for a single-phase trial tagged exactly `label`."""
    return trial.phases == (label,)
