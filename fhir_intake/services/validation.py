"""
Validation helpers.

- JSON Schema validation of the outgoing transaction Bundle
- Flattening Pydantic errors into the ``{field: [messages]}`` shape the intake
  endpoint returns

Both collect every error rather than failing on the first one.
"""

from typing import Any

import jsonschema
from pydantic import ValidationError

from fhir_intake.schemas.fhir import FHIR_TRANSACTION_BUNDLE_SCHEMA, RESOURCE_SCHEMAS


def validate_against_schema(data: dict[str, Any], schema: dict[str, Any]) -> list[str]:
    """
    Validate a dict against a JSON schema.
    Returns a list of error messages (empty list = valid).
    """
    validator = jsonschema.Draft7Validator(schema)
    return [error.message for error in validator.iter_errors(data)]


def validate_bundle(bundle: dict[str, Any]) -> list[str]:
    """Check a transaction Bundle and each typed entry; messages are prefixed with the entry index."""
    errors = validate_against_schema(bundle, FHIR_TRANSACTION_BUNDLE_SCHEMA)
    if errors:
        return errors

    for index, entry in enumerate(bundle["entry"]):
        resource = entry["resource"]
        schema = RESOURCE_SCHEMAS.get(resource["resourceType"])
        if schema is None:
            continue
        errors.extend(
            f"entry[{index}] {resource['resourceType']}: {message}"
            for message in validate_against_schema(resource, schema)
        )
    return errors


def format_validation_errors(exc: ValidationError) -> dict[str, list[str]]:
    """Group Pydantic errors by dotted field path, e.g. ``address.zipCode``."""
    formatted: dict[str, list[str]] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "body"
        formatted.setdefault(field, []).append(error["msg"])
    return formatted
