"""Helpers shared by the source adapters."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from pydantic import ValidationError

from lmsnorm.core.errors import MissingRequiredFieldError
from lmsnorm.core.logging import get_logger
from lmsnorm.core.timestamps import normalize_timestamp
from lmsnorm.schemas.normalized import Grade, LMSName, SourceMeta
from lmsnorm.schemas.raw import AuxFragments, RawTimestamp

log = get_logger("adapters.common")


def first_of(*values: Any) -> Any:
    """First value that is neither ``None`` nor an empty string."""
    for value in values:
        if value is not None and value != "":
            return value
    return None


def as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def compact(mapping: Mapping[str, Any]) -> Dict[str, Any]:
    """Drop keys whose value is ``None`` or an empty string."""
    return {key: value for key, value in mapping.items() if value is not None and value != ""}


def stable_id(value: Any) -> Optional[str]:
    """Stringify a source identifier deterministically.

    Integral numbers render as plain decimals (``12.0`` -> ``"12"``); strings
    are stripped; containers and booleans are not identifiers.
    """
    if value is None or isinstance(value, (bool, dict, list)):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return str(int(value)) if value.is_integer() else repr(value)
    text = str(value).strip()
    return text or None


def text_or_none(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value)
    return text if text.strip() else None


def to_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def to_int(value: Any) -> Optional[int]:
    number = to_number(value)
    if number is None or not number.is_integer() or number < 0:
        return None
    return int(number)


def percentage_of(score: Optional[float], total: Optional[float]) -> Optional[float]:
    """Score as a 0-100 percentage of ``total``, rounded to 2 decimals."""
    if score is None or not total:
        return None
    return round(score / total * 100, 2)


def scale_fraction(fraction: Any) -> Optional[float]:
    """Scale a 0-1 fraction onto the canonical 0-100 convention."""
    value = to_number(fraction)
    if value is None:
        return None
    return round(value * 100, 2)


def make_grade(raw_score: Any, total: Optional[float], percentage: Optional[float] = None, **metadata: Any) -> Grade:
    """Build a grade, keeping non-numeric source grades (letters) in metadata.

    A missing score stays ``None``; it is never turned into zero.
    """
    score = to_number(raw_score)
    meta = compact(metadata)
    if score is None and raw_score is not None and raw_score != "":
        meta["raw_grade"] = raw_score
    if percentage is None:
        percentage = percentage_of(score, total)
    return Grade(score=score, totalscore=total, percentage=percentage, metadata=meta)


def fetched_now() -> str:
    return normalize_timestamp(datetime.now(timezone.utc))


def source_meta(lms: LMSName, raw_course_id: Any) -> SourceMeta:
    return SourceMeta(lms=lms, raw_course_id=stable_id(raw_course_id), fetched_at=fetched_now())


def require_course_id(lms: LMSName, *candidates: Any) -> str:
    """Resolve the course identifier or fail; there is no default course id."""
    for candidate in candidates:
        course_id = stable_id(candidate)
        if course_id:
            return course_id
    raise MissingRequiredFieldError("course.id", lms)


def coerce_aux(aux: Any, lms: LMSName) -> AuxFragments:
    if aux is None:
        return AuxFragments()
    if isinstance(aux, AuxFragments):
        return aux
    try:
        return AuxFragments.model_validate(aux)
    except ValidationError as exc:
        log.warning(f"Ignoring malformed auxiliary fragments for {lms}: {exc.error_count()} error(s)")
        return AuxFragments()


class SubmissionIndex:
    """Lookup table over auxiliary submission timestamps, scoped to one adapter call.

    Keys are ``(assignment id, learner key)`` with learner keys compared
    case-insensitively. Entries that never match a primary submission are only
    counted.
    """

    def __init__(self, *submission_maps: Mapping[str, Mapping[str, Optional[RawTimestamp]]]):
        self._entries: Dict[Tuple[str, str], Optional[RawTimestamp]] = {}
        self._matched: Set[Tuple[str, str]] = set()
        # later maps override earlier ones
        for submissions_map in submission_maps:
            for assignment_id, by_learner in as_dict(submissions_map).items():
                for learner_key, ts in as_dict(by_learner).items():
                    self._entries[(str(assignment_id), str(learner_key).lower())] = ts

    @classmethod
    def build(cls, aux: AuxFragments, inline: Any = None) -> "SubmissionIndex":
        return cls(as_dict(inline), aux.submissions_map)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def unmatched(self) -> int:
        return len(self._entries) - len(self._matched)

    def lookup(self, assignment_id: Any, learner_keys: Iterable[Any]) -> Optional[str]:
        if not self._entries or assignment_id is None:
            return None
        for learner_key in learner_keys:
            if learner_key is None or learner_key == "":
                continue
            key = (str(assignment_id), str(learner_key).lower())
            if key not in self._entries:
                continue
            self._matched.add(key)
            ts = normalize_timestamp(self._entries[key])
            if ts:
                return ts
        return None

    def merge(self, submission: Dict[str, Any], assignment_id: Any, learner_keys: Iterable[Any]) -> bool:
        """Overlay an auxiliary timestamp onto a submission under construction."""
        ts = self.lookup(assignment_id, learner_keys)
        if ts is None:
            return False
        submission["submitted_at"] = ts
        return True

    def report(self, lms: LMSName) -> None:
        if self._entries and self.unmatched:
            log.debug(f"{lms}: {self.unmatched} of {len(self._entries)} auxiliary submission entries had no match")
