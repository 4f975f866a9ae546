"""
Local audit store.

Clinical data lives only in the remote FHIR repository.  This database keeps
the compliance trail: who touched which record, and the outcome of every
intake submission.  PHI columns are encrypted at the application layer.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, Integer, String, Text, Uuid

from fhir_intake.models.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Audit Log – immutable compliance trail
# ---------------------------------------------------------------------------
class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    actor = Column(String(128), nullable=False, comment="User or service identity")
    action = Column(String(64), nullable=False, comment="submit | read")
    resource_type = Column(String(64), nullable=False, comment="FHIR resource type")
    resource_id = Column(String(128), nullable=False, comment="Submission or FHIR resource id")
    detail = Column(JSON, comment="Context for the action (no PHI)")
    timestamp = Column(DateTime, default=_utcnow, nullable=False)

    __table_args__ = (Index("ix_audit_timestamp", "timestamp"),)


# ---------------------------------------------------------------------------
# Submission Attempt – one row per POST /intake that reached the gateway
# ---------------------------------------------------------------------------
class SubmissionAttempt(Base):
    __tablename__ = "submission_attempts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    submission_id = Column(String(64), unique=True, nullable=False, comment="Caller-facing id")
    state = Column(String(32), nullable=False, comment="persisted | rejected | transient_failure")
    failure_kind = Column(String(32), nullable=True)
    http_status = Column(Integer, nullable=False)
    record_count = Column(Integer, nullable=False, default=0)
    record_counts = Column(JSON, default=dict, comment="Records per FHIR resource type")
    remote_batch_id = Column(String(128), nullable=True)
    remote_patient_id = Column(String(128), nullable=True)
    encrypted_patient_name = Column(Text, nullable=False, comment="Fernet-encrypted full name")
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, default=_utcnow)

    __table_args__ = (Index("ix_submission_state", "state"),)
