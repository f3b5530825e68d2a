"""Project-wide constants."""

# -- ClinicalTrials.gov -----------------------------------------------------
CLINICAL_TRIALS_API_URL: str = "https://clinicaltrials.gov/api/v2"
CLINICAL_TRIALS_MAX_PAGE_SIZE: int = 100
DEFAULT_PAGE_SIZE: int = 10

# -- Normalizer sentinels ---------------------------------------------------
NOT_SPECIFIED: str = "Not specified"
UNKNOWN_STATUS: str = "UNKNOWN"
NOT_APPLICABLE_PHASE: str = "N/A"
MULTI_PHASE: str = "Multi-Phase"

# v2 phase codes -> display labels
PHASE_LABELS: dict[str, str] = {
    "EARLY_PHASE1": "Early Phase 1",
    "PHASE1": "Phase 1",
    "PHASE2": "Phase 2",
    "PHASE3": "Phase 3",
    "PHASE4": "Phase 4",
    "NA": NOT_APPLICABLE_PHASE,
}

# Spellings of "no phase" seen in upstream data and user input
NOT_APPLICABLE_ALIASES: frozenset[str] = frozenset(
    {
        "",
        "n/a",
        "na",
        "not applicable",
        "not available",
        "none",
        "null",
    }
)

SINGLE_PHASES: tuple[str, ...] = ("Phase 1", "Phase 2", "Phase 3", "Phase 4")

# -- Client-side filter cache -----------------------------------------------
FILTER_CACHE_TTL: int = 5 * 60  # seconds
FILTER_CACHE_MAX_RESULTS: int = 1000
FILTER_CACHE_MAX_PAGES: int = 15
PAGINATION_STATE_TTL: int = 30 * 60  # seconds

# -- Overall status enumeration ---------------------------------------------
OVERALL_STATUSES: tuple[str, ...] = (
    "RECRUITING",
    "ACTIVE_NOT_RECRUITING",
    "COMPLETED",
    "ENROLLING_BY_INVITATION",
    "NOT_YET_RECRUITING",
    "SUSPENDED",
    "TERMINATED",
    "WITHDRAWN",
    "AVAILABLE",
    "NO_LONGER_AVAILABLE",
    "TEMPORARILY_NOT_AVAILABLE",
    "APPROVED_FOR_MARKETING",
    "WITHHELD",
    "UNKNOWN",
)

STATUS_DISPLAY_NAMES: dict[str, str] = {
    "RECRUITING": "Recruiting",
    "ACTIVE_NOT_RECRUITING": "Active, Not Recruiting",
    "COMPLETED": "Completed",
    "ENROLLING_BY_INVITATION": "Enrolling by Invitation",
    "NOT_YET_RECRUITING": "Not Yet Recruiting",
    "SUSPENDED": "Suspended",
    "TERMINATED": "Terminated",
    "WITHDRAWN": "Withdrawn",
    "AVAILABLE": "Available",
    "NO_LONGER_AVAILABLE": "No Longer Available",
    "TEMPORARILY_NOT_AVAILABLE": "Temporarily Not Available",
    "APPROVED_FOR_MARKETING": "Approved for Marketing",
    "WITHHELD": "Withheld",
    "UNKNOWN": "Unknown",
}

STATUS_DESCRIPTIONS: dict[str, str] = {
    "RECRUITING": "Currently recruiting participants",
    "ACTIVE_NOT_RECRUITING": "Active but no longer recruiting",
    "COMPLETED": "Study has concluded",
    "ENROLLING_BY_INVITATION": "Only enrolling invited participants",
    "NOT_YET_RECRUITING": "Study approved but not yet recruiting",
    "SUSPENDED": "Study temporarily paused",
    "TERMINATED": "Study stopped early",
    "WITHDRAWN": "Study withdrawn before enrollment",
    "AVAILABLE": "Treatment/intervention available",
    "NO_LONGER_AVAILABLE": "Treatment no longer available",
    "TEMPORARILY_NOT_AVAILABLE": "Treatment temporarily unavailable",
    "APPROVED_FOR_MARKETING": "Approved for marketing",
    "WITHHELD": "Study withheld",
    "UNKNOWN": "Status unknown",
}

# -- Country analytics ------------------------------------------------------
ANALYTICS_COUNTRIES: tuple[str, ...] = (
    "United States",
    "China",
    "Germany",
    "United Kingdom",
    "France",
    "Canada",
    "Italy",
    "Spain",
    "Netherlands",
    "Australia",
    "Japan",
    "Belgium",
    "Switzerland",
    "South Korea",
    "Israel",
)
ANALYTICS_TOP_COUNTRIES: int = 10
ANALYTICS_SAMPLE_SIZE: int = 1000

COUNTRY_FLAGS: dict[str, str] = {
    "United States": "🇺🇸",
    "China": "🇨🇳",
    "Germany": "🇩🇪",
    "United Kingdom": "🇬🇧",
    "France": "🇫🇷",
    "Canada": "🇨🇦",
    "Italy": "🇮🇹",
    "Spain": "🇪🇸",
    "Netherlands": "🇳🇱",
    "Australia": "🇦🇺",
    "Japan": "🇯🇵",
    "Belgium": "🇧🇪",
    "Switzerland": "🇨🇭",
    "South Korea": "🇰🇷",
    "Israel": "🇮🇱",
    "Sweden": "🇸🇪",
    "Norway": "🇳🇴",
    "Denmark": "🇩🇰",
    "Austria": "🇦🇹",
    "Finland": "🇫🇮",
}
DEFAULT_COUNTRY_FLAG: str = "🌍"

COUNTRY_DESCRIPTIONS: dict[str, str] = {
    "United States": "Leading in clinical trial volume and innovation",
    "China": "Rapidly expanding clinical research market",
    "Germany": "Strong pharmaceutical research infrastructure",
    "United Kingdom": "Major European clinical trials hub",
    "France": "Prominent in biomedical research",
    "Canada": "Growing clinical trials market",
    "Italy": "Significant European research contributor",
    "Spain": "Active in international clinical studies",
    "Netherlands": "High-quality research environment",
    "Australia": "Leading Asia-Pacific research hub",
    "Japan": "Advanced pharmaceutical development",
    "Belgium": "European regulatory expertise",
    "Switzerland": "Pharmaceutical industry center",
    "South Korea": "Emerging clinical trials market",
    "Israel": "Innovation in biotechnology research",
}
