# Schemas package
from lmsnorm.schemas.normalized import (
    Assessment,
    AssessmentAnswer,
    AssessmentItem,
    AssessmentResult,
    Assignment,
    ChatChannel,
    ChatMessage,
    Course,
    CoursePerson,
    Diagnostics,
    Grade,
    Institution,
    LMSName,
    NormalizedPayload,
    Person,
    SourceMeta,
    Submission,
    TranscriptRecord,
)
from lmsnorm.schemas.raw import AuxFragments
from lmsnorm.schemas.results import NormalizationOutcome, ValidationResult

__all__ = [
    "Assessment",
    "AssessmentAnswer",
    "AssessmentItem",
    "AssessmentResult",
    "Assignment",
    "AuxFragments",
    "ChatChannel",
    "ChatMessage",
    "Course",
    "CoursePerson",
    "Diagnostics",
    "Grade",
    "Institution",
    "LMSName",
    "NormalizationOutcome",
    "NormalizedPayload",
    "Person",
    "SourceMeta",
    "Submission",
    "TranscriptRecord",
    "ValidationResult",
]
