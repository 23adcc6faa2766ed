"""Data-quality signals computed over a normalized learner list."""

from __future__ import annotations

from typing import Any, Iterable, Optional

from lmsnorm.core.config import settings
from lmsnorm.schemas.normalized import Diagnostics


def _email_of(learner: Any) -> Any:
    if isinstance(learner, dict):
        return learner.get("email")
    return getattr(learner, "email", None)


def build_diagnostics(learners: Iterable[Any], note: Optional[str] = None) -> Diagnostics:
    """Count learners with an absent or empty email and attach a note when any are found.

    New signals go in as additional ``Diagnostics`` fields; existing ones keep
    their meaning.
    """
    missing_email_count = sum(1 for learner in learners if not _email_of(learner))
    notes = []
    if missing_email_count > 0:
        notes.append(note or settings.MISSING_EMAIL_NOTE)
    return Diagnostics(missing_email_count=missing_email_count, notes=notes)
