"""
In-memory clinical records and the helpers builders use to shape them.

A ``Record`` is a tagged FHIR resource: ``kind`` names the repository
collection, ``resource`` holds only the JSON fields this service populates.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from fhir_intake.fhir.codes import UCUM, Code, Unit


class ResourceType(str, Enum):
    PATIENT = "Patient"
    OBSERVATION = "Observation"
    GOAL = "Goal"
    CONDITION = "Condition"
    MEDICATION_STATEMENT = "MedicationStatement"
    PROCEDURE = "Procedure"
    ALLERGY_INTOLERANCE = "AllergyIntolerance"
    MEDICATION_REQUEST = "MedicationRequest"
    SERVICE_REQUEST = "ServiceRequest"
    CONSENT = "Consent"
    INVOICE = "Invoice"
    APPOINTMENT = "Appointment"
    MEDIA = "Media"


@dataclass(frozen=True)
class Record:
    kind: ResourceType
    id: str
    resource: dict[str, Any]

    @property
    def full_url(self) -> str:
        return urn_uuid(self.id)


def new_id() -> str:
    """A fresh random identifier; never derived from record content."""
    return str(uuid.uuid4())


def urn_uuid(record_id: str) -> str:
    return f"urn:uuid:{record_id}"


def make_record(kind: ResourceType, resource: dict[str, Any]) -> Record:
    record_id = new_id()
    return Record(
        kind=kind,
        id=record_id,
        resource={"resourceType": kind.value, "id": record_id, **resource},
    )


# ---------------------------------------------------------------------------
# Shape helpers
# ---------------------------------------------------------------------------

def reference(target: str) -> dict[str, str]:
    return {"reference": target}


def concept(code: Code | None = None, text: str | None = None) -> dict[str, Any]:
    result: dict[str, Any] = {}
    if code is not None:
        result["coding"] = [code.coding()]
    if text is not None:
        result["text"] = text
    return result


def status_concept(system: str, code: str) -> dict[str, Any]:
    return {"coding": [{"system": system, "code": code}]}


def quantity(value: float, unit: Unit) -> dict[str, Any]:
    return {"value": value, "unit": unit.unit, "system": UCUM, "code": unit.code}


def timestamp(now: datetime) -> str:
    return now.isoformat()


def observation(
    subject: str,
    now: datetime,
    *,
    category: Code,
    code: dict[str, Any],
    **value: Any,
) -> Record:
    """Build a final Observation; ``value`` carries the value[x]/component/note fields."""
    return make_record(
        ResourceType.OBSERVATION,
        {
            "status": "final",
            "category": [concept(category)],
            "code": code,
            "subject": reference(subject),
            "effectiveDateTime": timestamp(now),
            **value,
        },
    )
