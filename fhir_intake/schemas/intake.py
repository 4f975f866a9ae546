"""
Intake submission contract.

One submission from the weight-management intake form.  Identity, home address,
birth date, gender and the two anthropometric values are required; everything
else is optional and a missing field means "not discussed", never "false".
The model is frozen so resource builders cannot mutate it.
"""

from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class _IntakeModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class HomeAddress(_IntakeModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zipCode: str = Field(..., min_length=1)
    country: str | None = None


class ShippingAddress(_IntakeModel):
    fullName: str | None = None
    address1: str | None = None
    city: str | None = None
    state: str | None = None
    zipCode: str | None = None


class PaymentAddress(_IntakeModel):
    fullName: str | None = None
    zipCode: str | None = None


class IntakeSubmission(_IntakeModel):
    # Identity
    firstName: str = Field(..., min_length=1)
    lastName: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    # Older form versions post the number as "phoneNumber".
    phone: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("phone", "phoneNumber")
    )
    dateOfBirth: date
    gender: Literal["male", "female", "other", "unknown"]

    # Addresses
    address: HomeAddress
    shippingAddress: ShippingAddress | None = None
    paymentAddress: PaymentAddress | None = None

    # Anthropometrics (pounds / inches)
    weight: float = Field(..., gt=0)
    height: float = Field(..., gt=0)

    # Goals
    weightGoal: str | None = None
    mainReason: list[str] | None = None

    # Medical history
    medicalExclusionCriteria: list[str] | None = None
    weightRelatedComorbidity: list[str] | None = None
    otherExclusionConditions: list[str] | None = None

    # Medications
    anyMedications: bool | None = None
    anyMedicationsDescription: str | None = None
    priorWeightLossMedsUse: bool | None = None
    weightLossMedicationDescription: str | None = None
    lastMwlDose: str | None = None
    opiatePainMedications: bool | None = None
    opiatePainMedicationsDescription: str | None = None

    # Surgical history
    abdominalPelvicSurgeries: bool | None = None
    abdominalPelvicSurgeriesDescription: str | None = None

    # Lifestyle
    willingTo: list[str] | None = None
    weightChangeIn12Months: str | None = None
    medicalLifestyleFactors: list[str] | None = None
    weightManagementProgram: bool | None = None
    weightManagementProgramDescription: str | None = None

    # Labs and patient-reported vitals
    glucoseValue: float | None = None
    hemoglobinValue: float | None = None
    bloodPressureRange: str | None = None
    restingHeartRateRange: str | None = None
    startingWeightInLbs: float | None = None

    # Allergies
    medicationAllergies: bool | None = None
    medicationAllergiesDescription: str | None = None

    # Free-text note for the clinician
    anyFurtherInformation: bool | None = None
    anyFurtherInformationDescription: str | None = None

    # Consent
    consentTc: bool | None = None

    # Treatment selection and payment
    productId: str | None = None
    productName: str | None = None
    price: float | None = None
    priceCurrency: str | None = None
    priceId: str | None = None
    subscriptionId: str | None = None
    paymentCompleted: bool | None = None

    # Care coordination
    syncVisit: bool | None = None
    syncVisitReason: str | None = None
    clearanceRequired: bool | None = None
    schedulingCompleted: bool | None = None

    # Administrative / eligibility
    mwlEligibility: bool | None = None
    dqReason: str | None = None
    mwlExclusivity: bool | None = None

    glp1MedicationPenImage: str | None = None


REQUIRED_FIELDS: list[str] = [
    name for name, field in IntakeSubmission.model_fields.items() if field.is_required()
]
OPTIONAL_FIELDS: list[str] = [
    name for name, field in IntakeSubmission.model_fields.items() if not field.is_required()
]
