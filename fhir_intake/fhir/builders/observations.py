"""Additional, social-history and administrative observations."""

from __future__ import annotations

from datetime import datetime

from fhir_intake.fhir import codes
from fhir_intake.fhir.codes import Code
from fhir_intake.fhir.records import Record, concept, observation, quantity
from fhir_intake.schemas.intake import IntakeSubmission


def build_additional_observations(
    intake: IntakeSubmission, subject: str, now: datetime
) -> list[Record]:
    """Labs, patient-reported vital bins, starting weight and free-text notes."""
    records = []

    if intake.glucoseValue is not None:
        records.append(
            observation(
                subject,
                now,
                category=codes.LABORATORY,
                code=concept(codes.FASTING_GLUCOSE),
                valueQuantity=quantity(intake.glucoseValue, codes.MG_PER_DL),
            )
        )

    if intake.hemoglobinValue is not None:
        records.append(
            observation(
                subject,
                now,
                category=codes.LABORATORY,
                code=concept(codes.HEMOGLOBIN_A1C),
                valueQuantity=quantity(intake.hemoglobinValue, codes.PERCENT),
            )
        )

    # Blood pressure and heart rate arrive as patient-reported ranges, not readings.
    if intake.bloodPressureRange:
        records.append(
            observation(
                subject,
                now,
                category=codes.VITAL_SIGNS,
                code=concept(codes.BLOOD_PRESSURE_PANEL),
                valueString=intake.bloodPressureRange,
            )
        )

    if intake.restingHeartRateRange:
        records.append(
            observation(
                subject,
                now,
                category=codes.VITAL_SIGNS,
                code=concept(codes.RESTING_HEART_RATE),
                valueString=intake.restingHeartRateRange,
            )
        )

    if intake.startingWeightInLbs is not None:
        records.append(
            observation(
                subject,
                now,
                category=codes.VITAL_SIGNS,
                code=concept(codes.BODY_WEIGHT, text="Starting weight"),
                valueQuantity=quantity(intake.startingWeightInLbs, codes.POUNDS),
            )
        )

    if intake.anyFurtherInformation and intake.anyFurtherInformationDescription:
        records.append(
            observation(
                subject,
                now,
                category=codes.SOCIAL_HISTORY,
                code=concept(text="Instructions for doctor"),
                valueString=intake.anyFurtherInformationDescription,
            )
        )

    if intake.weightManagementProgram and intake.weightManagementProgramDescription:
        records.append(
            observation(
                subject,
                now,
                category=codes.SOCIAL_HISTORY,
                code=concept(text="Prior weight management program"),
                note=[{"text": intake.weightManagementProgramDescription}],
            )
        )

    if intake.medicalLifestyleFactors:
        records.append(
            observation(
                subject,
                now,
                category=codes.SOCIAL_HISTORY,
                code={
                    "coding": [
                        {
                            "system": codes.FORMULATION_PREF_SYSTEM,
                            "display": "Formulation preferences",
                        }
                    ]
                },
                valueString=", ".join(intake.medicalLifestyleFactors),
            )
        )

    return records


def build_social_history_observations(
    intake: IntakeSubmission, subject: str, now: datetime
) -> list[Record]:
    records = []

    if intake.willingTo:
        records.append(
            observation(
                subject,
                now,
                category=codes.SOCIAL_HISTORY,
                code=concept(codes.WILLING_TO_PARTICIPATE),
                component=[
                    {"code": {"text": "Activity willingness"}, "valueString": activity}
                    for activity in intake.willingTo
                ],
            )
        )

    if intake.weightChangeIn12Months:
        records.append(
            observation(
                subject,
                now,
                category=codes.SOCIAL_HISTORY,
                code=concept(codes.WEIGHT_CHANGE_12MO),
                valueString=intake.weightChangeIn12Months,
            )
        )

    return records


def build_administrative_observations(
    intake: IntakeSubmission, subject: str, now: datetime
) -> list[Record]:
    """Eligibility screening answers, recorded as survey observations."""
    records = []

    def survey(code: Code, **value) -> Record:
        return observation(subject, now, category=codes.SURVEY, code=concept(code), **value)

    # A False answer is still an answer, so these two check for presence.
    if intake.mwlEligibility is not None:
        records.append(survey(codes.MWL_ELIGIBILITY, valueBoolean=intake.mwlEligibility))

    if intake.dqReason:
        records.append(survey(codes.DQ_REASON, valueString=intake.dqReason))

    if intake.mwlExclusivity is not None:
        records.append(survey(codes.MWL_EXCLUSIVITY, valueBoolean=intake.mwlExclusivity))

    return records
