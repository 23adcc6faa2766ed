"""Normalize LMS course exports (edX, Canvas, Moodle, Google Classroom) into one canonical payload."""

from lmsnorm.adapters import normalize_canvas, normalize_edx, normalize_google_classroom, normalize_moodle
from lmsnorm.core.diagnostics import build_diagnostics
from lmsnorm.core.errors import MissingRequiredFieldError, NormalizationError, SchemaViolationError
from lmsnorm.core.timestamps import normalize_timestamp
from lmsnorm.schemas import AuxFragments, NormalizedPayload, ValidationResult
from lmsnorm.services import NormalizationJob, NormalizationService, ensure_valid, validate

__version__ = "0.1.0"

__all__ = [
    "AuxFragments",
    "MissingRequiredFieldError",
    "NormalizationError",
    "NormalizationJob",
    "NormalizationService",
    "NormalizedPayload",
    "SchemaViolationError",
    "ValidationResult",
    "build_diagnostics",
    "ensure_valid",
    "normalize_canvas",
    "normalize_edx",
    "normalize_google_classroom",
    "normalize_moodle",
    "normalize_timestamp",
    "validate",
]
