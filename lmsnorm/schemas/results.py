from typing import List, Optional

from pydantic import BaseModel, Field

from lmsnorm.schemas.normalized import LMSName, NormalizedPayload


class ValidationResult(BaseModel):
    valid: bool
    errors: Optional[List[str]] = None


class NormalizationOutcome(BaseModel):
    """Result of one normalize-then-validate job."""

    label: str
    lms: Optional[LMSName] = None
    success: bool
    payload: Optional[NormalizedPayload] = None
    errors: List[str] = Field(default_factory=list)
