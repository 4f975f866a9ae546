"""
Chart reader: rebuilds a patient's chart from the repository.

The Patient is read first; a missing patient is reported before any other
query runs.  The linked sections are then searched concurrently, one query
per resource type.  By default a failing section degrades to an empty list
and is named in ``PatientChart.degraded_sections``, so callers can tell
"no records" apart from "records unavailable".  ``strict=True`` fails the
whole read instead.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, NamedTuple, Optional, Protocol

from fhir_intake.fhir.client import FhirClientError, ResourceNotFoundError

logger = logging.getLogger(__name__)


class PatientNotFoundError(Exception):
    def __init__(self, patient_id: str):
        self.patient_id = patient_id
        super().__init__(f"Patient {patient_id} not found")


class ChartReadError(Exception):
    """Strict mode: a linked section could not be read."""

    def __init__(self, section: str, cause: BaseException):
        self.section = section
        self.cause = cause
        super().__init__(f"Failed to read chart section '{section}': {cause}")


class ChartSource(Protocol):
    async def read_by_id(self, collection: str, resource_id: str) -> dict[str, Any]: ...

    async def search(
        self,
        collection: str,
        *,
        subject_ref: str,
        param: str = "subject",
        sort: str = "-_lastUpdated",
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]: ...


# ---------------------------------------------------------------------------
# Navigation annotations
# ---------------------------------------------------------------------------

@dataclass
class ResourceLink:
    """Presentational pointer back to a record's location in the repository UI."""

    resource_type: str
    resource_id: str
    resource_path: str
    display_name: str | None = None
    code: str | None = None
    category: str | None = None
    url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "resourceType": self.resource_type,
            "resourceId": self.resource_id,
            "resourcePath": self.resource_path,
            "displayName": self.display_name,
            "code": self.code,
            "category": self.category,
            "url": self.url,
        }


def _first_coding(concept: dict[str, Any] | None) -> dict[str, Any]:
    codings = (concept or {}).get("coding") or []
    return codings[0] if codings else {}


def _first(items: list[dict[str, Any]] | None) -> dict[str, Any] | None:
    return items[0] if items else None


def _concept_label(concept: dict[str, Any] | None) -> tuple[str | None, str | None]:
    """(display text, code) for a CodeableConcept, preferring its free text."""
    coding = _first_coding(concept)
    return (concept or {}).get("text") or coding.get("display"), coding.get("code")


def _observation_label(resource: dict[str, Any]) -> tuple[str | None, str | None, str | None]:
    display, code = _concept_label(resource.get("code"))
    category = _first_coding(_first(resource.get("category"))).get("code")
    return display, code, category


def _goal_label(resource: dict[str, Any]) -> tuple[str | None, str | None, str | None]:
    display, _ = _concept_label(resource.get("description"))
    return display, None, None


def _code_label(element: str) -> Callable[[dict[str, Any]], tuple]:
    def label(resource: dict[str, Any]) -> tuple[str | None, str | None, str | None]:
        display, code = _concept_label(resource.get(element))
        return display, code, None

    return label


def _first_of_list_label(element: str, fallback: str) -> Callable[[dict[str, Any]], tuple]:
    def label(resource: dict[str, Any]) -> tuple[str | None, str | None, str | None]:
        coding = _first_coding(_first(resource.get(element)))
        return coding.get("display") or fallback, coding.get("code"), None

    return label


def _invoice_label(resource: dict[str, Any]) -> tuple[str | None, str | None, str | None]:
    coding = _first_coding(resource.get("type"))
    return coding.get("display") or "Invoice", coding.get("code"), None


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

class ChartSection(NamedTuple):
    name: str
    collection: str
    param: str
    limit: Optional[int]
    label: Callable[[dict[str, Any]], tuple]


CHART_SECTIONS: list[ChartSection] = [
    ChartSection("observations", "Observation", "subject", 100, _observation_label),
    ChartSection("goals", "Goal", "subject", None, _goal_label),
    ChartSection("conditions", "Condition", "subject", None, _code_label("code")),
    ChartSection(
        "medicationStatements",
        "MedicationStatement",
        "subject",
        None,
        _code_label("medicationCodeableConcept"),
    ),
    ChartSection("procedures", "Procedure", "subject", None, _code_label("code")),
    ChartSection("allergies", "AllergyIntolerance", "patient", None, _code_label("code")),
    ChartSection(
        "medicationRequests",
        "MedicationRequest",
        "subject",
        None,
        _code_label("medicationCodeableConcept"),
    ),
    ChartSection("serviceRequests", "ServiceRequest", "subject", None, _code_label("code")),
    ChartSection("consents", "Consent", "patient", None, _first_of_list_label("category", "Consent")),
    ChartSection("invoices", "Invoice", "subject", None, _invoice_label),
    ChartSection(
        "appointments",
        "Appointment",
        "actor",
        None,
        _first_of_list_label("serviceType", "Appointment"),
    ),
]


@dataclass
class PatientChart:
    patient: dict[str, Any]
    sections: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    degraded_sections: list[str] = field(default_factory=list)
    links: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"patient": self.patient, **self.sections}
        if self.links is not None:
            data["resourceMappings"] = self.links
        data["degradedSections"] = list(self.degraded_sections)
        return data


class ChartReader:
    """
    Args:
        client:        repository client (``FhirClient`` or a test double).
        strict:        fail the whole read when any section fails.
        timeout:       per-section timeout in seconds; ``None`` waits indefinitely.
        link_base_url: repository UI base used to build ``ResourceLink.url``.
    """

    def __init__(
        self,
        client: ChartSource,
        *,
        strict: bool = False,
        timeout: float | None = None,
        link_base_url: str | None = None,
    ):
        self.client = client
        self.strict = strict
        self.timeout = timeout
        self.link_base_url = link_base_url.rstrip("/") if link_base_url else None

    async def read_chart(self, patient_id: str, *, with_links: bool = True) -> PatientChart:
        try:
            patient = await self.client.read_by_id("Patient", patient_id)
        except ResourceNotFoundError as exc:
            raise PatientNotFoundError(patient_id) from exc
        if not patient:
            raise PatientNotFoundError(patient_id)

        subject_ref = f"Patient/{patient_id}"
        # Every section runs to completion before any failure is acted on.
        results = await asyncio.gather(
            *(self._read_section(section, subject_ref) for section in CHART_SECTIONS),
            return_exceptions=True,
        )

        for result in results:
            if isinstance(result, BaseException) and not isinstance(
                result, (FhirClientError, asyncio.TimeoutError, ChartReadError)
            ):
                raise result
        if self.strict:
            failure = next((r for r in results if isinstance(r, ChartReadError)), None)
            if failure is not None:
                raise failure

        chart = PatientChart(patient=patient)
        for section, result in zip(CHART_SECTIONS, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Chart section '%s' unavailable for patient %s: %s",
                    section.name,
                    patient_id,
                    result,
                )
                chart.sections[section.name] = []
                chart.degraded_sections.append(section.name)
            else:
                chart.sections[section.name] = result

        if with_links:
            chart.links = self.build_links(chart)

        logger.info(
            "Chart read for patient %s: %d sections, %d degraded",
            patient_id,
            len(CHART_SECTIONS),
            len(chart.degraded_sections),
        )
        return chart

    async def _read_section(self, section: ChartSection, subject_ref: str) -> list[dict[str, Any]]:
        query = self.client.search(
            section.collection,
            subject_ref=subject_ref,
            param=section.param,
            sort="-_lastUpdated",
            limit=section.limit,
        )
        try:
            if self.timeout is None:
                return await query
            return await asyncio.wait_for(query, timeout=self.timeout)
        except (FhirClientError, asyncio.TimeoutError) as exc:
            if self.strict:
                raise ChartReadError(section.name, exc) from exc
            raise

    # ── Links ────────────────────────────────────────────────────────────────

    def make_link(
        self,
        resource: dict[str, Any],
        display_name: str | None = None,
        code: str | None = None,
        category: str | None = None,
    ) -> ResourceLink:
        resource_type = resource.get("resourceType", "")
        resource_id = resource.get("id") or ""
        path = f"{resource_type}/{resource_id}"
        return ResourceLink(
            resource_type=resource_type,
            resource_id=resource_id,
            resource_path=path,
            display_name=display_name,
            code=code,
            category=category,
            url=f"{self.link_base_url}/{path}" if self.link_base_url else None,
        )

    def build_links(self, chart: PatientChart) -> dict[str, Any]:
        links: dict[str, Any] = {
            "patient": self.make_link(
                chart.patient, "Patient Demographics", None, "Demographics"
            ).to_dict()
        }
        for section in CHART_SECTIONS:
            links[section.name] = [
                self.make_link(resource, *section.label(resource)).to_dict()
                for resource in chart.sections.get(section.name, [])
            ]
        return links
