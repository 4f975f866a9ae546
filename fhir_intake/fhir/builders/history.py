"""
Goals and medical history: conditions, medication statements, procedures,
allergies.

A flag/description pair only produces a record when both halves are present;
a description without its flag (or the reverse) is silently skipped.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fhir_intake.fhir import codes
from fhir_intake.fhir.records import (
    Record,
    ResourceType,
    concept,
    make_record,
    reference,
    status_concept,
    timestamp,
)
from fhir_intake.schemas.intake import IntakeSubmission


# ---------------------------------------------------------------------------
# Goals
# ---------------------------------------------------------------------------

def build_goals(intake: IntakeSubmission, subject: str, now: datetime) -> list[Record]:
    goals = []
    if intake.weightGoal:
        goals.append(_goal(intake.weightGoal, subject, now))

    for reason in intake.mainReason or []:
        extension = None
        snomed = codes.match_goal_reason(reason)
        if snomed is not None:
            # Goal has no code element in R4, so the SNOMED concept rides on an extension.
            extension = [{"url": codes.GOAL_SNOMED_EXTENSION, "valueCoding": snomed.coding()}]
        goals.append(_goal(reason, subject, now, extension=extension))

    return goals


def _goal(
    text: str,
    subject: str,
    now: datetime,
    *,
    extension: list[dict[str, Any]] | None = None,
) -> Record:
    resource: dict[str, Any] = {
        "lifecycleStatus": "active",
        "category": [concept(codes.BEHAVIORAL_GOAL)],
        "description": {"text": text},
        "subject": reference(subject),
        "startDate": now.date().isoformat(),
    }
    if extension:
        resource["extension"] = extension
    return make_record(ResourceType.GOAL, resource)


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------

def build_conditions(intake: IntakeSubmission, subject: str, now: datetime) -> list[Record]:
    entries = [
        *(intake.medicalExclusionCriteria or []),
        *(intake.weightRelatedComorbidity or []),
        *(intake.otherExclusionConditions or []),
    ]
    return [
        make_record(
            ResourceType.CONDITION,
            {
                "clinicalStatus": status_concept(codes.CONDITION_CLINICAL, "active"),
                "category": [status_concept(codes.CONDITION_CATEGORY, "problem-list-item")],
                "code": {"text": text},
                "subject": reference(subject),
            },
        )
        for text in entries
    ]


# ---------------------------------------------------------------------------
# Medication statements
# ---------------------------------------------------------------------------

def build_medication_statements(
    intake: IntakeSubmission, subject: str, now: datetime
) -> list[Record]:
    statements = []

    if intake.anyMedications and intake.anyMedicationsDescription:
        statements.append(
            _medication_statement(
                "Current medications", intake.anyMedicationsDescription, subject
            )
        )

    if intake.priorWeightLossMedsUse and intake.weightLossMedicationDescription:
        dosage: dict[str, Any] = {"text": intake.weightLossMedicationDescription}
        note = None
        if intake.lastMwlDose:
            dosage["timing"] = {
                "repeat": {
                    "extension": [
                        {"url": codes.LAST_DOSE_EXTENSION, "valueString": intake.lastMwlDose}
                    ]
                }
            }
            note = [{"text": f"Last dose: {intake.lastMwlDose}"}]
        statements.append(
            _medication_statement("Weight loss medications", dosage, subject, note=note)
        )

    if intake.opiatePainMedications and intake.opiatePainMedicationsDescription:
        statements.append(
            _medication_statement(
                "Opiate pain medications", intake.opiatePainMedicationsDescription, subject
            )
        )

    return statements


def _medication_statement(
    medication: str,
    dosage: str | dict[str, Any],
    subject: str,
    *,
    note: list[dict[str, str]] | None = None,
) -> Record:
    if isinstance(dosage, str):
        dosage = {"text": dosage}
    resource: dict[str, Any] = {
        "status": "active",
        "medicationCodeableConcept": {"text": medication},
        "subject": reference(subject),
        "dosage": [dosage],
    }
    if note:
        resource["note"] = note
    return make_record(ResourceType.MEDICATION_STATEMENT, resource)


# ---------------------------------------------------------------------------
# Procedures and allergies
# ---------------------------------------------------------------------------

def build_procedures(intake: IntakeSubmission, subject: str, now: datetime) -> list[Record]:
    if not (intake.abdominalPelvicSurgeries and intake.abdominalPelvicSurgeriesDescription):
        return []
    return [
        make_record(
            ResourceType.PROCEDURE,
            {
                "status": "completed",
                "code": {"text": "Abdominal/pelvic surgery"},
                "subject": reference(subject),
                "note": [{"text": intake.abdominalPelvicSurgeriesDescription}],
            },
        )
    ]


def build_allergies(intake: IntakeSubmission, subject: str, now: datetime) -> list[Record]:
    if not (intake.medicationAllergies and intake.medicationAllergiesDescription):
        return []
    return [
        make_record(
            ResourceType.ALLERGY_INTOLERANCE,
            {
                "clinicalStatus": status_concept(codes.ALLERGY_CLINICAL, "active"),
                "code": {"text": "Medication allergies"},
                "patient": reference(subject),
                "recordedDate": timestamp(now),
                "reaction": [
                    {"manifestation": [{"text": intake.medicationAllergiesDescription}]}
                ],
            },
        )
    ]
