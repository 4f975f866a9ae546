"""Weight, height and derived BMI measurements."""

from __future__ import annotations

import math
from datetime import datetime

from fhir_intake.fhir import codes
from fhir_intake.fhir.records import Record, concept, observation, quantity
from fhir_intake.schemas.intake import IntakeSubmission

BMI_FACTOR = 703


def calculate_bmi(weight_lb: float, height_in: float) -> float:
    """BMI from imperial units, rounded half away from zero to one decimal."""
    scaled = weight_lb / (height_in * height_in) * BMI_FACTOR * 10
    return math.copysign(math.floor(abs(scaled) + 0.5), scaled) / 10


def build_weight(intake: IntakeSubmission, subject: str, now: datetime) -> Record:
    return observation(
        subject,
        now,
        category=codes.VITAL_SIGNS,
        code=concept(codes.BODY_WEIGHT),
        valueQuantity=quantity(intake.weight, codes.POUNDS),
    )


def build_height(intake: IntakeSubmission, subject: str, now: datetime) -> Record:
    return observation(
        subject,
        now,
        category=codes.VITAL_SIGNS,
        code=concept(codes.BODY_HEIGHT),
        valueQuantity=quantity(intake.height, codes.INCHES),
    )


def build_bmi(intake: IntakeSubmission, subject: str, now: datetime) -> Record:
    return observation(
        subject,
        now,
        category=codes.VITAL_SIGNS,
        code=concept(codes.BMI),
        valueQuantity=quantity(calculate_bmi(intake.weight, intake.height), codes.KG_PER_M2),
    )
