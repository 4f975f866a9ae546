"""
JSON schemas for the outgoing FHIR transaction Bundle.

A pragmatic subset: real FHIR schemas are enormous, this captures the
structure the repository needs to resolve an intake transaction (entry
fullUrls, POST requests, typed resources, internal subject references).
"""

from fhir_intake.fhir.records import ResourceType

URN_UUID_PATTERN = "^urn:uuid:[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"

_REFERENCE: dict = {
    "type": "object",
    "required": ["reference"],
    "properties": {"reference": {"type": "string", "pattern": URN_UUID_PATTERN}},
}

FHIR_PATIENT_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "FHIR Patient (intake subset)",
    "type": "object",
    "required": ["resourceType", "name", "gender", "birthDate", "address"],
    "properties": {
        "resourceType": {"type": "string", "const": "Patient"},
        "name": {"type": "array", "minItems": 1},
        "birthDate": {
            "type": "string",
            "pattern": "^\\d{4}-\\d{2}-\\d{2}$",
            "description": "ISO 8601 date (YYYY-MM-DD).",
        },
        "gender": {
            "type": "string",
            "enum": ["male", "female", "other", "unknown"],
            "description": "Administrative gender per FHIR value set.",
        },
        "address": {"type": "array", "minItems": 1, "maxItems": 3},
    },
}

FHIR_OBSERVATION_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "FHIR Observation (intake subset)",
    "type": "object",
    "required": ["resourceType", "status", "code", "subject"],
    "properties": {
        "resourceType": {"type": "string", "const": "Observation"},
        "status": {
            "type": "string",
            "enum": ["registered", "preliminary", "final", "amended"],
        },
        "code": {
            "type": "object",
            "description": "LOINC or program-local coding, or free text.",
            "anyOf": [{"required": ["coding"]}, {"required": ["text"]}],
        },
        "subject": _REFERENCE,
        "valueQuantity": {
            "type": "object",
            "required": ["value", "unit"],
            "properties": {
                "value": {"type": "number"},
                "unit": {"type": "string"},
            },
        },
    },
}

FHIR_TRANSACTION_BUNDLE_SCHEMA: dict = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "FHIR transaction Bundle (intake subset)",
    "type": "object",
    "required": ["resourceType", "type", "entry"],
    "properties": {
        "resourceType": {"type": "string", "const": "Bundle"},
        "type": {"type": "string", "const": "transaction"},
        "entry": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["fullUrl", "resource", "request"],
                "properties": {
                    "fullUrl": {"type": "string", "pattern": URN_UUID_PATTERN},
                    "resource": {
                        "type": "object",
                        "required": ["resourceType", "id"],
                        "properties": {
                            "resourceType": {
                                "type": "string",
                                "enum": [kind.value for kind in ResourceType],
                            },
                        },
                    },
                    "request": {
                        "type": "object",
                        "required": ["method", "url"],
                        "properties": {
                            "method": {"type": "string", "const": "POST"},
                            "url": {"type": "string"},
                        },
                    },
                },
            },
        },
    },
}

# Per-resource checks applied to entries of the matching type.
RESOURCE_SCHEMAS: dict[str, dict] = {
    "Patient": FHIR_PATIENT_SCHEMA,
    "Observation": FHIR_OBSERVATION_SCHEMA,
}
