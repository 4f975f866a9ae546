"""
Code systems and lookup tables used by the resource builders.

LOINC for measurements and labs, SNOMED CT for goal reasons, UCUM for units,
HL7 terminology code systems for categories and statuses.  Codes local to the
intake program live under ``LOCAL_SYSTEM_BASE``.
"""

from __future__ import annotations

from typing import NamedTuple

LOINC = "http://loinc.org"
SNOMED = "http://snomed.info/sct"
UCUM = "http://unitsofmeasure.org"

OBSERVATION_CATEGORY = "http://terminology.hl7.org/CodeSystem/observation-category"
CONDITION_CLINICAL = "http://terminology.hl7.org/CodeSystem/condition-clinical"
CONDITION_CATEGORY = "http://terminology.hl7.org/CodeSystem/condition-category"
ALLERGY_CLINICAL = "http://terminology.hl7.org/CodeSystem/allergyintolerance-clinical"
GOAL_CATEGORY = "http://terminology.hl7.org/CodeSystem/goal-category"
CONSENT_SCOPE = "http://terminology.hl7.org/CodeSystem/consentscope"
CONSENT_CATEGORY = "http://terminology.hl7.org/CodeSystem/consentcategorycodes"
MEDIA_TYPE = "http://terminology.hl7.org/CodeSystem/media-type"

LOCAL_SYSTEM_BASE = "https://openloop.org/fhir"
PATIENT_ID_SYSTEM = f"{LOCAL_SYSTEM_BASE}/patient-ids"
OBSERVATION_CODES = f"{LOCAL_SYSTEM_BASE}/observation-codes"
SERVICE_CODES = f"{LOCAL_SYSTEM_BASE}/service-codes"
MEDICATION_CODES = f"{LOCAL_SYSTEM_BASE}/medication-codes"
PRICE_ID_SYSTEM = f"{LOCAL_SYSTEM_BASE}/price-ids"
SUBSCRIPTION_ID_SYSTEM = f"{LOCAL_SYSTEM_BASE}/subscription-ids"
GOAL_SNOMED_EXTENSION = f"{LOCAL_SYSTEM_BASE}/goal-snomed-code"
LAST_DOSE_EXTENSION = f"{LOCAL_SYSTEM_BASE}/last-dose-timing"
FORMULATION_PREF_SYSTEM = "formulation-pref"


class Code(NamedTuple):
    system: str
    code: str
    display: str

    def coding(self) -> dict[str, str]:
        return {"system": self.system, "code": self.code, "display": self.display}


class Unit(NamedTuple):
    unit: str
    code: str


# ---------------------------------------------------------------------------
# Observation categories
# ---------------------------------------------------------------------------

VITAL_SIGNS = Code(OBSERVATION_CATEGORY, "vital-signs", "Vital Signs")
LABORATORY = Code(OBSERVATION_CATEGORY, "laboratory", "Laboratory")
SOCIAL_HISTORY = Code(OBSERVATION_CATEGORY, "social-history", "Social History")
SURVEY = Code(OBSERVATION_CATEGORY, "survey", "Survey")

# ---------------------------------------------------------------------------
# Measurement and lab codes (LOINC) with their UCUM units
# ---------------------------------------------------------------------------

BODY_WEIGHT = Code(LOINC, "29463-7", "Body weight")
BODY_HEIGHT = Code(LOINC, "8302-2", "Body height")
BMI = Code(LOINC, "39156-5", "Body mass index (BMI) [Ratio]")
FASTING_GLUCOSE = Code(LOINC, "33747-0", "Fasting glucose [Mass/volume] in Serum or Plasma")
HEMOGLOBIN_A1C = Code(LOINC, "4548-4", "Hemoglobin A1c/Hemoglobin.total in Blood")
BLOOD_PRESSURE_PANEL = Code(LOINC, "85354-9", "Blood pressure panel with all children optional")
RESTING_HEART_RATE = Code(LOINC, "40443-4", "Heart rate --resting")

POUNDS = Unit("lb", "[lb_av]")
INCHES = Unit("in", "[in_i]")
KG_PER_M2 = Unit("kg/m2", "kg/m2")
MG_PER_DL = Unit("mg/dL", "mg/dL")
PERCENT = Unit("%", "%")

# ---------------------------------------------------------------------------
# Program-local observation and service codes
# ---------------------------------------------------------------------------

WILLING_TO_PARTICIPATE = Code(
    OBSERVATION_CODES, "willing-to-participate", "Willing to participate in activities"
)
WEIGHT_CHANGE_12MO = Code(
    OBSERVATION_CODES, "weight-change-12mo", "Weight change in last 12 months"
)
MWL_ELIGIBILITY = Code(OBSERVATION_CODES, "mwl-eligibility", "Medical weight loss eligibility")
DQ_REASON = Code(OBSERVATION_CODES, "dq-reason", "Disqualification reason")
MWL_EXCLUSIVITY = Code(
    OBSERVATION_CODES, "mwl-exclusivity", "MWL platform exclusivity agreement"
)

SYNC_TELEHEALTH_VISIT = Code(
    SERVICE_CODES, "sync-telehealth-visit", "Synchronous telehealth visit"
)
MEDICAL_CLEARANCE = Code(SERVICE_CODES, "medical-clearance-mwl", "Medical clearance for MWL/GLP-1")

BEHAVIORAL_GOAL = Code(GOAL_CATEGORY, "behavioral", "Behavioral")
TREATMENT_SCOPE = Code(CONSENT_SCOPE, "treatment", "Treatment")
ADVANCE_CARE_DIRECTIVE = Code(CONSENT_CATEGORY, "acd", "Advance Care Directive")
IMAGE_MEDIA = Code(MEDIA_TYPE, "image", "Image")

# ---------------------------------------------------------------------------
# Goal reasons -> SNOMED CT
# ---------------------------------------------------------------------------
# Ordered: the first keyword found in the reason text wins.
GOAL_REASON_CODES: list[tuple[str, str, str]] = [
    ("longevity", "111951006", "Longevity"),
    ("reduce risk", "1255619009", "Risk level"),
    ("improve health", "182840001", "Improve health"),
    ("increase energy", "248263006", "Increase energy"),
    ("reduce cardiovascular risk", "1255619009", "Risk level"),
    ("improve diabetes control", "182840001", "Improve health"),
]


def match_goal_reason(reason: str) -> Code | None:
    """Return the SNOMED code for a free-text goal reason, or None if no keyword matches."""
    reason_lower = reason.lower()
    for keyword, code, display in GOAL_REASON_CODES:
        if keyword in reason_lower:
            return Code(SNOMED, code, display)
    return None
