"""
Care plan and administrative records: treatment request, service requests,
consent, invoice, appointment and media.
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
    timestamp,
)
from fhir_intake.schemas.intake import IntakeSubmission

DEFAULT_CURRENCY = "USD"


def build_treatment_request(
    intake: IntakeSubmission, subject: str, now: datetime
) -> Record | None:
    """The selected product as a draft MedicationRequest proposal."""
    if not (intake.productId and intake.productName):
        return None

    resource: dict[str, Any] = {
        "status": "draft",
        "intent": "proposal",
        "medicationCodeableConcept": {
            "coding": [
                {
                    "system": codes.MEDICATION_CODES,
                    "code": intake.productId,
                    "display": intake.productName,
                }
            ],
            "text": intake.productName,
        },
        "subject": reference(subject),
        "authoredOn": timestamp(now),
    }
    if intake.lastMwlDose:
        resource["note"] = [{"text": f"Last dose: {intake.lastMwlDose}"}]
    return make_record(ResourceType.MEDICATION_REQUEST, resource)


def build_service_requests(
    intake: IntakeSubmission, subject: str, now: datetime
) -> list[Record]:
    requests = []
    if intake.syncVisit:
        requests.append(
            _service_request(
                codes.SYNC_TELEHEALTH_VISIT, subject, now, note=intake.syncVisitReason
            )
        )
    if intake.clearanceRequired:
        requests.append(_service_request(codes.MEDICAL_CLEARANCE, subject, now))
    return requests


def _service_request(
    code: codes.Code, subject: str, now: datetime, *, note: str | None = None
) -> Record:
    resource: dict[str, Any] = {
        "status": "active",
        "intent": "plan",
        "code": concept(code),
        "subject": reference(subject),
        "authoredOn": timestamp(now),
    }
    if note:
        resource["note"] = [{"text": note}]
    return make_record(ResourceType.SERVICE_REQUEST, resource)


def build_consent(intake: IntakeSubmission, subject: str, now: datetime) -> Record | None:
    if not intake.consentTc:
        return None
    return make_record(
        ResourceType.CONSENT,
        {
            "status": "active",
            "scope": concept(codes.TREATMENT_SCOPE),
            "category": [concept(codes.ADVANCE_CARE_DIRECTIVE)],
            "patient": reference(subject),
            "dateTime": timestamp(now),
            "provision": {"type": "permit"},
        },
    )


def build_invoice(intake: IntakeSubmission, subject: str, now: datetime) -> Record | None:
    if not (intake.price or intake.priceId or intake.subscriptionId):
        return None

    identifiers = []
    if intake.priceId:
        identifiers.append(
            {
                "system": codes.PRICE_ID_SYSTEM,
                "value": intake.priceId,
                "type": {"text": "priceId"},
            }
        )
    if intake.subscriptionId:
        identifiers.append(
            {
                "system": codes.SUBSCRIPTION_ID_SYSTEM,
                "value": intake.subscriptionId,
                "type": {"text": "subscriptionId"},
            }
        )

    resource: dict[str, Any] = {
        "status": "issued" if intake.paymentCompleted else "draft",
        "subject": reference(subject),
        "date": timestamp(now),
        "identifier": identifiers,
    }
    if intake.price:
        resource["totalGross"] = {
            "value": intake.price,
            "currency": intake.priceCurrency or DEFAULT_CURRENCY,
        }
    return make_record(ResourceType.INVOICE, resource)


def build_appointment(intake: IntakeSubmission, subject: str, now: datetime) -> Record | None:
    if not intake.schedulingCompleted:
        return None
    return make_record(
        ResourceType.APPOINTMENT,
        {
            "status": "booked",
            "participant": [{"actor": reference(subject), "status": "accepted"}],
        },
    )


def build_media(intake: IntakeSubmission, subject: str, now: datetime) -> Record | None:
    if not intake.glp1MedicationPenImage:
        return None
    return make_record(
        ResourceType.MEDIA,
        {
            "status": "completed",
            "type": concept(codes.IMAGE_MEDIA),
            "subject": reference(subject),
            "createdDateTime": timestamp(now),
            "content": {
                "contentType": "image/jpeg",
                "url": intake.glp1MedicationPenImage,
                "title": "GLP-1 medication pen/vial image",
            },
        },
    )
