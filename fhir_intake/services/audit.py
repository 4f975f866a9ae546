"""Audit logging service for compliance tracking."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from fhir_intake.models.audit import AuditLog, SubmissionAttempt
from fhir_intake.services.encryption import EncryptionService
from fhir_intake.services.submission import SubmissionOutcome

logger = logging.getLogger(__name__)


def log_action(
    db: Session,
    *,
    actor: str,
    action: str,
    resource_type: str,
    resource_id: str,
    detail: dict[str, Any] | None = None,
) -> None:
    """Write an immutable audit log entry."""
    entry = AuditLog(
        actor=actor,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        detail=detail,
    )
    db.add(entry)
    db.flush()
    logger.info("AUDIT: %s %s %s/%s", actor, action, resource_type, resource_id)


def record_submission(
    db: Session,
    outcome: SubmissionOutcome,
    *,
    patient_name: str,
    record_counts: dict[str, int],
    started_at: datetime,
    encryption: EncryptionService,
) -> SubmissionAttempt:
    """Persist the outcome of one submission attempt; the patient name is stored encrypted."""
    attempt = SubmissionAttempt(
        submission_id=outcome.submission_id,
        state=outcome.state.value,
        failure_kind=outcome.failure.value if outcome.failure else None,
        http_status=outcome.http_status,
        record_count=outcome.record_count,
        record_counts=record_counts,
        remote_batch_id=outcome.batch_id,
        remote_patient_id=outcome.patient_id,
        encrypted_patient_name=encryption.encrypt(patient_name),
        started_at=started_at,
    )
    db.add(attempt)
    db.flush()
    return attempt
