"""Shared fixtures: intake payloads and an in-memory FHIR repository double."""

from __future__ import annotations

import copy
import uuid
from typing import Any

import pytest

from fhir_intake.fhir.client import ResourceNotFoundError, TransactionResult


MINIMAL_PAYLOAD: dict[str, Any] = {
    "firstName": "Jane",
    "lastName": "Doe",
    "email": "jane.doe@example.com",
    "phone": "+1-555-123-4567",
    "dateOfBirth": "1985-06-15",
    "gender": "female",
    "address": {
        "street": "123 Main Street",
        "city": "Anytown",
        "state": "CA",
        "zipCode": "90210",
    },
    "weight": 180,
    "height": 72,
}

FULL_PAYLOAD: dict[str, Any] = {
    **MINIMAL_PAYLOAD,
    "shippingAddress": {
        "fullName": "Jane Doe",
        "address1": "500 Harbor Blvd",
        "city": "Portside",
        "state": "CA",
        "zipCode": "90731",
    },
    "paymentAddress": {"fullName": "Jane Doe", "zipCode": "90210"},
    "weightGoal": "Lose 30 pounds",
    "mainReason": ["Longevity", "wants to feel better"],
    "medicalExclusionCriteria": ["None of the above"],
    "weightRelatedComorbidity": ["Hypertension", "Sleep apnea"],
    "otherExclusionConditions": ["Gallbladder disease"],
    "anyMedications": True,
    "anyMedicationsDescription": "Lisinopril 10mg daily",
    "priorWeightLossMedsUse": True,
    "weightLossMedicationDescription": "Semaglutide 0.5mg weekly",
    "lastMwlDose": "2 weeks ago",
    "opiatePainMedications": True,
    "opiatePainMedicationsDescription": "Tramadol as needed",
    "abdominalPelvicSurgeries": True,
    "abdominalPelvicSurgeriesDescription": "Appendectomy",
    "medicationAllergies": True,
    "medicationAllergiesDescription": "Penicillin - hives",
    "glucoseValue": 98,
    "hemoglobinValue": 5.6,
    "bloodPressureRange": "120-129/80-84",
    "restingHeartRateRange": "60-70",
    "startingWeightInLbs": 195,
    "anyFurtherInformation": True,
    "anyFurtherInformationDescription": "Prefers morning calls",
    "weightManagementProgram": True,
    "weightManagementProgramDescription": "Weight Watchers, 2019",
    "medicalLifestyleFactors": ["Injectable", "Oral"],
    "willingTo": ["Exercise", "Change diet"],
    "weightChangeIn12Months": "Gained 10-20 lbs",
    "productId": "sema-05",
    "productName": "Semaglutide 0.5mg",
    "price": 299.0,
    "priceCurrency": "USD",
    "priceId": "price_123",
    "subscriptionId": "sub_456",
    "paymentCompleted": True,
    "syncVisit": True,
    "syncVisitReason": "State requires synchronous visit",
    "clearanceRequired": True,
    "consentTc": True,
    "schedulingCompleted": True,
    "mwlEligibility": True,
    "dqReason": "None",
    "mwlExclusivity": False,
    "glp1MedicationPenImage": "https://files.example.com/pen.jpg",
}


@pytest.fixture
def minimal_payload() -> dict[str, Any]:
    return copy.deepcopy(MINIMAL_PAYLOAD)


@pytest.fixture
def full_payload() -> dict[str, Any]:
    return copy.deepcopy(FULL_PAYLOAD)


def _rewrite_references(value: Any, id_map: dict[str, str]) -> Any:
    if isinstance(value, dict):
        return {
            key: id_map.get(item, item) if key == "reference" else _rewrite_references(item, id_map)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_rewrite_references(item, id_map) for item in value]
    return value


def _references(resource: dict[str, Any], param: str) -> list[str]:
    if param == "actor":
        return [p.get("actor", {}).get("reference") for p in resource.get("participant", [])]
    return [resource.get(param, {}).get("reference")]


class FakeRepository:
    """
    Atomic in-memory repository: a transaction is staged in full and only
    committed if nothing fails, mirroring FHIR transaction semantics.
    """

    def __init__(self):
        self.store: dict[str, dict[str, dict[str, Any]]] = {}
        self.write_calls = 0
        self.read_calls: list[tuple[str, str]] = []
        self.search_calls: list[str] = []
        self.fail_write: Exception | None = None
        self.fail_search: dict[str, Exception] = {}
        self.fail_read: Exception | None = None

    async def write_atomic_batch(self, bundle: dict[str, Any]) -> TransactionResult:
        self.write_calls += 1
        id_map = {}
        for entry in bundle["entry"]:
            id_map[entry["fullUrl"]] = f"{entry['request']['url']}/{uuid.uuid4()}"

        staged: list[tuple[str, str, dict[str, Any]]] = []
        for entry in bundle["entry"]:
            collection, server_id = id_map[entry["fullUrl"]].split("/")
            resource = _rewrite_references(copy.deepcopy(entry["resource"]), id_map)
            resource["id"] = server_id
            staged.append((collection, server_id, resource))
            if self.fail_write is not None and len(staged) == max(1, len(bundle["entry"]) // 2):
                raise self.fail_write

        for collection, server_id, resource in staged:
            self.store.setdefault(collection, {})[server_id] = resource
        return TransactionResult(
            batch_id=f"bundle-{self.write_calls}",
            locations=[f"{id_map[e['fullUrl']]}/_history/1" for e in bundle["entry"]],
        )

    async def read_by_id(self, collection: str, resource_id: str) -> dict[str, Any]:
        self.read_calls.append((collection, resource_id))
        if self.fail_read is not None:
            raise self.fail_read
        try:
            return self.store[collection][resource_id]
        except KeyError:
            raise ResourceNotFoundError(404, f"{collection}/{resource_id} not found")

    async def search(
        self,
        collection: str,
        *,
        subject_ref: str,
        param: str = "subject",
        sort: str = "-_lastUpdated",
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        self.search_calls.append(collection)
        if collection in self.fail_search:
            raise self.fail_search[collection]
        matches = [
            resource
            for resource in self.store.get(collection, {}).values()
            if subject_ref in _references(resource, param)
        ]
        return matches[:limit] if limit else matches

    def count(self) -> int:
        return sum(len(records) for records in self.store.values())


@pytest.fixture
def fake_repository() -> FakeRepository:
    return FakeRepository()
