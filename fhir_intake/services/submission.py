"""
Submission gateway: one atomic write per intake, one classified outcome.

Lifecycle: VALIDATED -> BUILT -> SUBMITTED -> PERSISTED | REJECTED |
TRANSIENT_FAILURE.  There is no partial-success state: the repository
applies the transaction Bundle whole or not at all, and the gateway never
splits it or retries it.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from fhir_intake.fhir.assembler import RecordBatch
from fhir_intake.fhir.client import (
    FhirClientError,
    MalformedRequestError,
    RateLimitedError,
    RemoteAuthError,
    RemoteUnavailableError,
    ResourceNotFoundError,
    TransactionResult,
)

logger = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    VALIDATED = "validated"
    BUILT = "built"
    SUBMITTED = "submitted"
    PERSISTED = "persisted"
    REJECTED = "rejected"
    TRANSIENT_FAILURE = "transient_failure"


class FailureKind(str, Enum):
    MALFORMED_REQUEST = "malformed_request"
    REMOTE_AUTH = "remote_auth"
    REMOTE_UNAVAILABLE = "remote_unavailable"
    RATE_LIMITED = "rate_limited"

    @property
    def retryable(self) -> bool:
        return self in (FailureKind.REMOTE_UNAVAILABLE, FailureKind.RATE_LIMITED)


SUCCESS_MESSAGE = (
    "Your intake form has been successfully submitted. "
    "We will contact you shortly to schedule your appointment."
)
MALFORMED_MESSAGE = "Invalid data format. Please check your information and try again."
AUTH_MESSAGE = "Healthcare system is unavailable. Please contact support."
UNAVAILABLE_MESSAGE = "Healthcare system is temporarily unavailable. Please try again later."
TIMEOUT_MESSAGE = "Request to healthcare system timed out. Please try again."
RATE_LIMITED_MESSAGE = "Too many requests. Please wait a moment and try again."


class BatchWriter(Protocol):
    async def write_atomic_batch(self, bundle: dict[str, Any]) -> TransactionResult: ...


@dataclass
class SubmissionOutcome:
    state: SubmissionState
    submission_id: str
    message: str
    http_status: int
    record_count: int
    failure: FailureKind | None = None
    diagnostics: list[str] = field(default_factory=list)
    batch_id: str | None = None
    patient_id: str | None = None
    retry_after: float | None = None

    @property
    def success(self) -> bool:
        return self.state == SubmissionState.PERSISTED

    @property
    def retryable(self) -> bool:
        return self.failure is not None and self.failure.retryable


class SubmissionGateway:
    """Executes a ``RecordBatch`` as a single transaction against the repository."""

    def __init__(self, client: BatchWriter):
        self.client = client

    async def submit(self, batch: RecordBatch) -> SubmissionOutcome:
        submission_id = str(uuid.uuid4())
        bundle = batch.to_bundle()
        logger.info(
            "Submitting %s: %d records %s", submission_id, len(batch), batch.count_by_kind()
        )

        try:
            result = await self.client.write_atomic_batch(bundle)
        except FhirClientError as exc:
            return self._failure(submission_id, len(batch), exc)

        logger.info(
            "Submission %s persisted (bundle=%s, patient=%s)",
            submission_id,
            result.batch_id,
            result.patient_id,
        )
        return SubmissionOutcome(
            state=SubmissionState.PERSISTED,
            submission_id=submission_id,
            message=SUCCESS_MESSAGE,
            http_status=201,
            record_count=len(batch),
            batch_id=result.batch_id,
            patient_id=result.patient_id,
        )

    def _failure(self, submission_id: str, count: int, exc: FhirClientError) -> SubmissionOutcome:
        outcome = classify_failure(exc)
        outcome.submission_id = submission_id
        outcome.record_count = count

        if outcome.failure == FailureKind.REMOTE_AUTH:
            # Credentials or endpoint configuration is wrong for this deployment.
            logger.error(
                "Submission %s rejected by repository auth (HTTP %d)",
                submission_id,
                exc.status_code,
            )
        else:
            logger.warning(
                "Submission %s failed: %s (HTTP %d)",
                submission_id,
                outcome.failure.value,
                exc.status_code,
            )
        return outcome


def classify_failure(exc: FhirClientError) -> SubmissionOutcome:
    """Translate a client error into a caller-facing outcome (ids filled in by the gateway)."""

    def outcome(state, failure, message, http_status, **extra) -> SubmissionOutcome:
        return SubmissionOutcome(
            state=state,
            submission_id="",
            message=message,
            http_status=http_status,
            record_count=0,
            failure=failure,
            **extra,
        )

    if isinstance(exc, MalformedRequestError):
        message = MALFORMED_MESSAGE
        if exc.diagnostics:
            message = f"Data validation failed: {', '.join(exc.diagnostics)}"
        return outcome(
            SubmissionState.REJECTED,
            FailureKind.MALFORMED_REQUEST,
            message,
            400,
            diagnostics=list(exc.diagnostics),
        )

    # A missing transaction endpoint is a deployment problem, like bad credentials.
    if isinstance(exc, (RemoteAuthError, ResourceNotFoundError)):
        return outcome(SubmissionState.REJECTED, FailureKind.REMOTE_AUTH, AUTH_MESSAGE, 502)

    if isinstance(exc, RateLimitedError):
        return outcome(
            SubmissionState.TRANSIENT_FAILURE,
            FailureKind.RATE_LIMITED,
            RATE_LIMITED_MESSAGE,
            429,
            retry_after=exc.retry_after,
        )

    if isinstance(exc, RemoteUnavailableError) and exc.timed_out:
        return outcome(
            SubmissionState.TRANSIENT_FAILURE, FailureKind.REMOTE_UNAVAILABLE, TIMEOUT_MESSAGE, 504
        )

    return outcome(
        SubmissionState.TRANSIENT_FAILURE, FailureKind.REMOTE_UNAVAILABLE, UNAVAILABLE_MESSAGE, 502
    )
