"""Error taxonomy for the normalizer.

Malformed timestamps and unmatched auxiliary fragments are recovered where
they occur and never reach this module.
"""

from __future__ import annotations

from typing import List, Optional


class NormalizationError(Exception):
    """Base class for hard normalization failures."""


class MissingRequiredFieldError(NormalizationError):
    """Raised by an adapter when a required canonical field cannot be derived."""

    def __init__(self, field: str, lms: Optional[str] = None):
        self.field = field
        self.lms = lms
        where = f" ({lms})" if lms else ""
        super().__init__(f"Cannot derive required field '{field}' from raw payload{where}")


class SchemaViolationError(NormalizationError):
    """Raised by ``ensure_valid`` when a payload fails structural validation."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(f"Payload failed validation with {len(self.errors)} error(s): " + "; ".join(self.errors))
