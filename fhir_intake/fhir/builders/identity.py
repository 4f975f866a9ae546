"""Patient (identity) record."""

from __future__ import annotations

from typing import Any

from fhir_intake.fhir.codes import PATIENT_ID_SYSTEM
from fhir_intake.fhir.records import Record, ResourceType
from fhir_intake.schemas.intake import IntakeSubmission

DEFAULT_COUNTRY = "US"


def build_patient(intake: IntakeSubmission, patient_id: str) -> Record:
    """The identity record.  Its id is chosen by the assembler so references can be wired first."""
    return Record(
        kind=ResourceType.PATIENT,
        id=patient_id,
        resource={
            "resourceType": ResourceType.PATIENT.value,
            "id": patient_id,
            "active": True,
            "identifier": [{"system": PATIENT_ID_SYSTEM, "value": patient_id}],
            "name": [
                {
                    "use": "official",
                    "family": intake.lastName,
                    "given": [intake.firstName],
                }
            ],
            "gender": intake.gender,
            "birthDate": intake.dateOfBirth.isoformat(),
            "telecom": _telecom(intake),
            "address": _addresses(intake),
        },
    )


def _telecom(intake: IntakeSubmission) -> list[dict[str, str]]:
    telecom = []
    if intake.email:
        telecom.append({"system": "email", "value": intake.email, "use": "home"})
    if intake.phone:
        telecom.append({"system": "phone", "value": intake.phone, "use": "home"})
    return telecom


def _addresses(intake: IntakeSubmission) -> list[dict[str, Any]]:
    home = intake.address
    addresses: list[dict[str, Any]] = [
        {
            "use": "home",
            "type": "physical",
            "line": [home.street],
            "city": home.city,
            "state": home.state,
            "postalCode": home.zipCode,
            "country": DEFAULT_COUNTRY,
        }
    ]

    shipping = intake.shippingAddress
    if shipping is not None:
        addresses.append(
            _drop_empty(
                {
                    "use": "temp",
                    "type": "postal",
                    "line": [line for line in (shipping.fullName, shipping.address1) if line],
                    "city": shipping.city,
                    "state": shipping.state,
                    "postalCode": shipping.zipCode,
                    "country": DEFAULT_COUNTRY,
                }
            )
        )

    billing = intake.paymentAddress
    if billing is not None:
        addresses.append(
            _drop_empty(
                {
                    "use": "billing",
                    "type": "postal",
                    "line": [billing.fullName] if billing.fullName else [],
                    "postalCode": billing.zipCode,
                    "country": DEFAULT_COUNTRY,
                }
            )
        )

    return addresses


def _drop_empty(address: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in address.items() if value not in (None, [], "")}
