"""
FastAPI routes – the main API surface.

- POST /intake        build the FHIR record graph and submit it as one transaction
- GET  /intake        describe the intake API
- GET  /patient/{id}  composite chart read from the repository
- GET  /health        liveness and audit-database connectivity

Session authentication of callers is handled in front of this service.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from fhir_intake.config import settings
from fhir_intake.fhir.assembler import assemble_batch
from fhir_intake.fhir.client import FhirClient, FhirClientError, RemoteAuthError
from fhir_intake.fhir.records import ResourceType
from fhir_intake.models.database import get_db
from fhir_intake.schemas.api import (
    HealthResponse,
    IntakeApiInfo,
    IntakeResponse,
    PatientDetailResponse,
)
from fhir_intake.schemas.intake import OPTIONAL_FIELDS, REQUIRED_FIELDS, IntakeSubmission
from fhir_intake.services.audit import log_action, record_submission
from fhir_intake.services.chart import ChartReader, ChartReadError, PatientNotFoundError
from fhir_intake.services.encryption import EncryptionService
from fhir_intake.services.submission import SubmissionGateway, SubmissionOutcome
from fhir_intake.services.validation import format_validation_errors, validate_bundle

logger = logging.getLogger(__name__)

router = APIRouter()

VALIDATION_FAILED_MESSAGE = "Validation failed. Please check the form and try again."
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_fhir_client(request: Request) -> FhirClient:
    """The process-wide repository client opened at startup."""
    return request.app.state.fhir_client


def get_encryption() -> EncryptionService:
    return EncryptionService()


def _intake_response(status_code: int, **fields: Any) -> JSONResponse:
    body = IntakeResponse(**fields).model_dump(exclude_none=True)
    return JSONResponse(status_code=status_code, content=body)


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse)
def health_check(db: Session = Depends(get_db)):
    """Basic health endpoint – verifies audit DB connectivity."""
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception:
        db_status = "disconnected"
    return HealthResponse(
        status="healthy",
        environment=settings.ENVIRONMENT,
        database=db_status,
        repository_credentials=bool(settings.FHIR_CLIENT_ID and settings.FHIR_CLIENT_SECRET),
    )


# ---------------------------------------------------------------------------
# Intake submission
# ---------------------------------------------------------------------------

@router.post("/intake", response_model=IntakeResponse, status_code=201)
async def submit_intake(
    payload: dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    client: FhirClient = Depends(get_fhir_client),
    encryption: EncryptionService = Depends(get_encryption),
):
    """
    Validate an intake form, convert it to a FHIR transaction Bundle and
    submit it.  Either every record is stored or none is.
    """
    started_at = datetime.now(timezone.utc)

    try:
        intake = IntakeSubmission.model_validate(payload)
    except ValidationError as exc:
        return _intake_response(
            400,
            success=False,
            message=VALIDATION_FAILED_MESSAGE,
            errors=format_validation_errors(exc),
        )

    batch = assemble_batch(intake, now=started_at)

    bundle_errors = validate_bundle(batch.to_bundle())
    if bundle_errors:
        logger.error("Assembled bundle failed shape check: %s", bundle_errors)
        return _intake_response(500, success=False, message=UNEXPECTED_ERROR_MESSAGE)

    outcome = await SubmissionGateway(client).submit(batch)

    await run_in_threadpool(
        _audit_submission,
        db,
        outcome,
        patient_name=f"{intake.firstName} {intake.lastName}",
        record_counts=batch.count_by_kind(),
        started_at=started_at,
        encryption=encryption,
    )

    if outcome.success:
        return _intake_response(
            201, success=True, message=outcome.message, submissionId=outcome.submission_id
        )

    response = _intake_response(outcome.http_status, success=False, message=outcome.message)
    if outcome.retry_after is not None:
        response.headers["Retry-After"] = str(int(outcome.retry_after))
    return response


def _audit_submission(
    db: Session,
    outcome: SubmissionOutcome,
    *,
    patient_name: str,
    record_counts: dict[str, int],
    started_at: datetime,
    encryption: EncryptionService,
) -> None:
    """
    Record the attempt in the audit store.  The repository write has already
    happened, so an audit failure is logged and never changes the response.
    """
    try:
        record_submission(
            db,
            outcome,
            patient_name=patient_name,
            record_counts=record_counts,
            started_at=started_at,
            encryption=encryption,
        )
        log_action(
            db,
            actor="intake_api",
            action="submit",
            resource_type="Bundle",
            resource_id=outcome.submission_id,
            detail={
                "state": outcome.state.value,
                "failure": outcome.failure.value if outcome.failure else None,
                "record_count": outcome.record_count,
                "patient_id": outcome.patient_id,
            },
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Audit write failed for submission %s (state=%s, patient=%s)",
            outcome.submission_id,
            outcome.state.value,
            outcome.patient_id,
        )


@router.get("/intake", response_model=IntakeApiInfo)
def intake_info():
    """Describe the intake endpoint and the FHIR resources it produces."""
    return IntakeApiInfo(
        message="Intake Form API with FHIR repository integration",
        version="2.0.0",
        methods=["POST"],
        description="Submit patient intake form data as a single FHIR R4 transaction",
        fhirResources=[kind.value for kind in ResourceType],
        requiredFields=REQUIRED_FIELDS,
        optionalFields=OPTIONAL_FIELDS,
    )


# ---------------------------------------------------------------------------
# Patient chart
# ---------------------------------------------------------------------------

def _access_denied(exc: BaseException) -> bool:
    if isinstance(exc, ChartReadError):
        exc = exc.cause
    return isinstance(exc, RemoteAuthError) and exc.status_code == 403


@router.get("/patient/{patient_id}", response_model=PatientDetailResponse)
async def get_patient_chart(
    patient_id: str,
    links: bool = True,
    db: Session = Depends(get_db),
    client: FhirClient = Depends(get_fhir_client),
):
    """Fetch the patient and every linked record type in parallel."""
    reader = ChartReader(
        client,
        strict=settings.CHART_READ_STRICT,
        timeout=settings.CHART_READ_TIMEOUT_SECONDS,
        link_base_url=settings.FHIR_FRONTEND_URL,
    )

    try:
        chart = await reader.read_chart(patient_id, with_links=links)
    except PatientNotFoundError:
        raise HTTPException(status_code=404, detail="Patient not found")
    except (FhirClientError, ChartReadError) as exc:
        if _access_denied(exc):
            raise HTTPException(status_code=403, detail="Access denied to patient data")
        logger.error("Chart read failed for patient %s: %s", patient_id, exc)
        raise HTTPException(status_code=500, detail="Failed to retrieve patient data")

    await run_in_threadpool(_audit_read, db, patient_id, chart.degraded_sections)

    return PatientDetailResponse(
        success=True,
        message="Patient data retrieved successfully",
        data=chart.to_dict(),
    )


def _audit_read(db: Session, patient_id: str, degraded_sections: list[str]) -> None:
    log_action(
        db,
        actor="api_user",
        action="read",
        resource_type="Patient",
        resource_id=patient_id,
        detail={"degraded_sections": degraded_sections},
    )
    db.commit()
