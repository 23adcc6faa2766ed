"""Structural validation of canonical payloads.

The contract lives in ``schemas/canonical.schema.json`` and is applied by the
generic draft-07 validator, so a new adapter needs no validator changes.
"""

from __future__ import annotations

import json
from functools import lru_cache
from importlib import resources
from typing import Any, Dict, Iterable, List, Mapping, Union

from jsonschema import Draft7Validator
from jsonschema.exceptions import ValidationError

from lmsnorm.core.errors import SchemaViolationError
from lmsnorm.core.logging import get_logger
from lmsnorm.schemas.normalized import NormalizedPayload
from lmsnorm.schemas.results import ValidationResult

log = get_logger("validator")

SCHEMA_RESOURCE = "canonical.schema.json"


@lru_cache(maxsize=1)
def load_schema() -> Dict[str, Any]:
    """Load the canonical JSON Schema shipped with the package."""
    text = resources.files("lmsnorm.schemas").joinpath(SCHEMA_RESOURCE).read_text(encoding="utf-8")
    return json.loads(text)


@lru_cache(maxsize=1)
def _validator() -> Draft7Validator:
    schema = load_schema()
    Draft7Validator.check_schema(schema)
    # "date-time" is only enforced when rfc3339-validator is installed (jsonschema[format-nongpl])
    return Draft7Validator(schema, format_checker=Draft7Validator.FORMAT_CHECKER)


def _pointer(path: Iterable[Any]) -> str:
    parts = [str(part) for part in path]
    return "/" + "/".join(parts) if parts else "/"


def _format(error: ValidationError) -> str:
    return f"{_pointer(error.absolute_path)} {error.message}"


def validate(payload: Union[NormalizedPayload, Mapping[str, Any], Any]) -> ValidationResult:
    """Validate a candidate payload and report every violation found."""
    instance = payload.to_dict() if isinstance(payload, NormalizedPayload) else payload

    errors: List[ValidationError] = sorted(
        _validator().iter_errors(instance),
        key=lambda err: _pointer(err.absolute_path),
    )
    if not errors:
        return ValidationResult(valid=True)

    messages = [_format(err) for err in errors]
    log.debug(f"Payload failed validation with {len(messages)} error(s)")
    return ValidationResult(valid=False, errors=messages)


def ensure_valid(payload: Union[NormalizedPayload, Mapping[str, Any], Any]) -> None:
    """Raise ``SchemaViolationError`` carrying all violations when the payload is invalid."""
    result = validate(payload)
    if not result.valid:
        raise SchemaViolationError(result.errors or [])
