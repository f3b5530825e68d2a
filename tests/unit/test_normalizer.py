"""Unit tests for the study normalizer and phase predicates."""

import pytest

from trialscope.services.normalizer import (
    has_exact_phase,
    is_multi_phase,
    is_not_applicable_phase,
    normalize_phases,
    normalize_study,
    phase_label,
)

FULL_STUDY = {
    "protocolSection": {
        "identificationModule": {
            "nctId": "NCT04280705",
            "briefTitle": "Adaptive COVID-19 Treatment Trial",
            "officialTitle": "A Multicenter, Adaptive, Randomized Blinded Controlled Trial",
        },
        "statusModule": {
            "overallStatus": "COMPLETED",
            "startDateStruct": {"date": "2020-02-21"},
            "completionDateStruct": {"date": "2020-05-21", "type": "ACTUAL"},
            "lastUpdatePostDateStruct": {"date": "2021-03-02"},
        },
        "conditionsModule": {"conditions": ["COVID-19", "Pneumonia", "COVID-19"]},
        "designModule": {
            "studyType": "INTERVENTIONAL",
            "phases": ["PHASE2", "PHASE3"],
            "enrollmentInfo": {"count": 1062},
        },
        "sponsorCollaboratorsModule": {
            "leadSponsor": {"name": "National Institute of Allergy and Infectious Diseases"}
        },
        "contactsLocationsModule": {
            "locations": [
                {"facility": "Site A", "city": "Omaha", "country": "United States"},
                {"facility": "Site B", "city": "Seoul", "country": "Korea, Republic of"},
                {"facility": "Site C", "city": "Denver", "country": "United States"},
            ]
        },
        "descriptionModule": {"briefSummary": "Evaluates remdesivir."},
        "eligibilityModule": {"minimumAge": "18 Years", "sex": "ALL"},
    }
}


class TestNormalizeStudy:
    def test_full_record(self):
        trial = normalize_study(FULL_STUDY)

        assert trial.nct_id == "NCT04280705"
        assert trial.title == "Adaptive COVID-19 Treatment Trial"
        assert trial.status == "COMPLETED"
        assert trial.phase == "Phase 2, Phase 3"
        assert trial.phases == ("Phase 2", "Phase 3")
        assert trial.condition == "COVID-19, Pneumonia"
        assert trial.country == "United States, Korea, Republic of"
        assert trial.countries == ("United States", "Korea, Republic of")
        assert trial.enrollment_count == 1062
        assert trial.study_type == "INTERVENTIONAL"
        assert trial.start_date == "2020-02-21"
        assert trial.completion_date == "2020-05-21"
        assert trial.last_update_date == "2021-03-02"
        assert len(trial.locations) == 3
        assert trial.locations[1].city == "Seoul"
        assert trial.minimum_age == "18 Years"
        assert trial.maximum_age == "Not specified"

    def test_missing_sections_collapse_to_sentinels(self):
        trial = normalize_study({"protocolSection": {"identificationModule": {"nctId": "NCT1"}}})

        assert trial.title == "Not specified"
        assert trial.official_title == "Not specified"
        assert trial.status == "UNKNOWN"
        assert trial.phase == "N/A"
        assert trial.phases == ()
        assert trial.condition == "Not specified"
        assert trial.country == "Not specified"
        assert trial.sponsor == "Not specified"
        assert trial.enrollment_count == 0
        assert trial.start_date is None
        assert trial.sex == "ALL"

    def test_empty_record(self):
        trial = normalize_study({})
        assert trial.nct_id == ""
        assert trial.phase == "N/A"

    def test_official_title_falls_back_to_brief_title(self):
        study = {"protocolSection": {"identificationModule": {"nctId": "NCT1", "briefTitle": "Short"}}}
        assert normalize_study(study).official_title == "Short"

    def test_invalid_enrollment_is_zero(self):
        study = {"protocolSection": {"designModule": {"enrollmentInfo": {"count": "many"}}}}
        assert normalize_study(study).enrollment_count == 0

    def test_na_phase_code(self):
        study = {"protocolSection": {"designModule": {"phases": ["NA"]}}}
        trial = normalize_study(study)
        assert trial.phase == "N/A"
        assert trial.phases == ("N/A",)


class TestPhaseLabels:
    @pytest.mark.parametrize(
        "code,label",
        [
            ("PHASE1", "Phase 1"),
            ("PHASE4", "Phase 4"),
            ("EARLY_PHASE1", "Early Phase 1"),
            ("NA", "N/A"),
            ("n/a", "N/A"),
            ("PHASE9", "PHASE9"),
        ],
    )
    def test_phase_label(self, code, label):
        assert phase_label(code) == label

    def test_normalize_phases_ignores_non_lists(self):
        assert normalize_phases(None) == ()
        assert normalize_phases("PHASE1") == ()


class TestPhasePredicates:
    def _trial(self, phases):
        return normalize_study({"protocolSection": {"designModule": {"phases": phases}}})

    def test_not_applicable(self):
        assert is_not_applicable_phase(self._trial([]))
        assert is_not_applicable_phase(self._trial(["NA"]))
        assert not is_not_applicable_phase(self._trial(["PHASE1"]))

    def test_multi_phase(self):
        assert is_multi_phase(self._trial(["PHASE1", "PHASE2"]))
        assert not is_multi_phase(self._trial(["PHASE2"]))
        assert not is_multi_phase(self._trial(["PHASE2", "NA"]))
        assert not is_multi_phase(self._trial([]))

    def test_exact_phase(self):
        assert has_exact_phase(self._trial(["PHASE2"]), "Phase 2")
        assert not has_exact_phase(self._trial(["PHASE2", "PHASE3"]), "Phase 2")
