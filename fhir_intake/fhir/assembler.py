"""
Bundle assembler: runs every resource builder over one intake submission and
packages the output as a single transaction batch.

The identity id is generated before any builder runs, so every dependent
record can reference ``urn:uuid:<patient id>`` and the repository resolves
those references inside the transaction.  Builder order is fixed; the
repository does not need it, but tests and logs do.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from fhir_intake.fhir.builders import care, history, measurements, observations
from fhir_intake.fhir.builders.identity import build_patient
from fhir_intake.fhir.records import Record, ResourceType, new_id, urn_uuid
from fhir_intake.schemas.intake import IntakeSubmission

logger = logging.getLogger(__name__)

Builder = Callable[[IntakeSubmission, str, datetime], "Record | list[Record] | None"]

# (name, builder) in output order, after the identity record.
BUILDERS: list[tuple[str, Builder]] = [
    ("weight", measurements.build_weight),
    ("height", measurements.build_height),
    ("bmi", measurements.build_bmi),
    ("goals", history.build_goals),
    ("conditions", history.build_conditions),
    ("medication_statements", history.build_medication_statements),
    ("procedures", history.build_procedures),
    ("allergies", history.build_allergies),
    ("additional_observations", observations.build_additional_observations),
    ("social_history_observations", observations.build_social_history_observations),
    ("administrative_observations", observations.build_administrative_observations),
    ("treatment_request", care.build_treatment_request),
    ("service_requests", care.build_service_requests),
    ("consent", care.build_consent),
    ("invoice", care.build_invoice),
    ("appointment", care.build_appointment),
    ("media", care.build_media),
]


@dataclass
class RecordBatch:
    """Every record produced from one submission, ready for one atomic write."""

    identity: Record
    entries: list[tuple[Record, str]] = field(default_factory=list)
    created_at: datetime | None = None

    @property
    def subject_reference(self) -> str:
        return self.identity.full_url

    @property
    def records(self) -> list[Record]:
        return [record for record, _ in self.entries]

    @property
    def records_by_id(self) -> dict[str, Record]:
        return {record.id: record for record, _ in self.entries}

    def __len__(self) -> int:
        return len(self.entries)

    def of_kind(self, kind: ResourceType) -> list[Record]:
        return [record for record in self.records if record.kind == kind]

    def count_by_kind(self) -> dict[str, int]:
        return dict(Counter(collection for _, collection in self.entries))

    def to_bundle(self) -> dict[str, Any]:
        """Serialize as a FHIR R4 transaction Bundle."""
        return {
            "resourceType": "Bundle",
            "type": "transaction",
            "entry": [
                {
                    "fullUrl": record.full_url,
                    "resource": record.resource,
                    "request": {"method": "POST", "url": collection},
                }
                for record, collection in self.entries
            ],
        }


def _as_records(output: Record | list[Record] | None) -> Iterable[Record]:
    if output is None:
        return ()
    if isinstance(output, Record):
        return (output,)
    return output


def assemble_batch(intake: IntakeSubmission, *, now: datetime | None = None) -> RecordBatch:
    """
    Build the complete record graph for one submission.

    ``now`` is captured once and shared by every builder, so two calls with the
    same input and the same ``now`` differ only in their generated ids.
    """
    now = now or datetime.now(timezone.utc)
    patient = build_patient(intake, new_id())
    subject = urn_uuid(patient.id)

    batch = RecordBatch(identity=patient, created_at=now)
    batch.entries.append((patient, patient.kind.value))

    for name, builder in BUILDERS:
        produced = list(_as_records(builder(intake, subject, now)))
        for record in produced:
            batch.entries.append((record, record.kind.value))
        logger.debug("Builder '%s' produced %d record(s)", name, len(produced))

    logger.info(
        "Assembled batch with %d records for patient %s", len(batch), patient.id
    )
    return batch
