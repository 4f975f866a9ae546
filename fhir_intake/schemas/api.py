"""Pydantic models for API request/response serialization."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


# ---------------------------------------------------------------------------
# Intake submission
# ---------------------------------------------------------------------------

class IntakeResponse(BaseModel):
    success: bool
    message: str
    submissionId: str | None = None
    errors: dict[str, list[str]] | None = None


class IntakeApiInfo(BaseModel):
    message: str
    version: str
    methods: list[str]
    description: str
    fhirResources: list[str]
    requiredFields: list[str]
    optionalFields: list[str]


# ---------------------------------------------------------------------------
# Patient chart
# ---------------------------------------------------------------------------

class PatientDetailResponse(BaseModel):
    success: bool
    message: str
    data: dict[str, Any] | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status: str = "healthy"
    environment: str
    database: str = "connected"
    repository_credentials: bool = False
