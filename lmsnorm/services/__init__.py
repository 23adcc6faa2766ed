# Services package
from lmsnorm.services.normalization_service import NormalizationJob, NormalizationService
from lmsnorm.services.validator import ensure_valid, load_schema, validate

__all__ = [
    "NormalizationJob",
    "NormalizationService",
    "ensure_valid",
    "load_schema",
    "validate",
]
