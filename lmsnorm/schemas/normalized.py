"""Canonical LMS data model shared by every adapter.

Field names on the wire keep the mixed convention consumers already rely on
(``maxScore``, ``time_enrolled``, ``fetchedAt``); Python attributes are
snake_case and mapped through aliases.
"""

from __future__ import annotations

from typing import Any, ClassVar, Dict, FrozenSet, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_serializer

LMSName = Literal["edx", "canvas", "moodle", "google-classroom"]


class CanonicalModel(BaseModel):
    """Frozen, closed base model.

    Serialization drops ``None`` values so an absent field stays absent on the
    wire; keys listed in ``nullable_fields`` are emitted as ``null`` instead.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    nullable_fields: ClassVar[FrozenSet[str]] = frozenset()

    @model_serializer(mode="wrap")
    def _drop_absent(self, handler):
        data = handler(self)
        keep = self._nullable_keys()
        return {key: value for key, value in data.items() if value is not None or key in keep}

    @classmethod
    def _nullable_keys(cls) -> FrozenSet[str]:
        keys = set()
        for name in cls.nullable_fields:
            field = cls.model_fields[name]
            keys.add(name)
            if field.alias:
                keys.add(field.alias)
        return frozenset(keys)


class SourceMeta(CanonicalModel):
    lms: LMSName
    raw_course_id: Optional[str] = Field(default=None, alias="rawCourseId")
    fetched_at: str = Field(alias="fetchedAt")


class Institution(CanonicalModel):
    id: Optional[str] = None
    name: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Course(CanonicalModel):
    id: str = Field(min_length=1)
    name: Optional[str] = None
    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Grade(CanonicalModel):
    """A recorded grade. ``score=None`` means nothing recorded, ``0`` means scored zero."""

    nullable_fields: ClassVar[FrozenSet[str]] = frozenset({"score", "totalscore", "percentage"})

    score: Optional[float]
    totalscore: Optional[float] = None
    percentage: Optional[Union[float, str]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Submission(CanonicalModel):
    submitted_at: Optional[str] = None
    workflow_state: Optional[str] = None
    grades: List[Grade] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Assignment(CanonicalModel):
    nullable_fields: ClassVar[FrozenSet[str]] = frozenset({"quiz_id"})

    id: str = Field(min_length=1)
    type: Optional[str] = None
    title: Optional[str] = None
    max_score: Optional[float] = Field(default=None, alias="maxScore")
    question_count: Optional[int] = None
    total_questions: Optional[int] = None
    is_quiz_assignment: Optional[bool] = None
    quiz_id: Optional[str] = None
    submissions: List[Submission] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Person(CanonicalModel):
    id: Optional[str] = None
    email: Optional[str] = None
    username: Optional[str] = None
    name: Optional[str] = None
    time_enrolled: Optional[str] = None
    profile: Dict[str, Any] = Field(default_factory=dict)


class CoursePerson(Person):
    """A person attached to a course, carrying their assignments."""

    assignments: Optional[List[Assignment]] = None


class AssessmentItem(CanonicalModel):
    q_id: str = Field(alias="qId")
    question: Optional[str] = None
    type: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AssessmentAnswer(CanonicalModel):
    q_id: str = Field(alias="qId")
    value: Any = None


class AssessmentResult(CanonicalModel):
    learner_id: str = Field(alias="learnerId")
    score: Optional[float] = None
    max_score: Optional[float] = Field(default=None, alias="maxScore")
    submitted_at: Optional[str] = Field(default=None, alias="submittedAt")
    answers: Optional[List[AssessmentAnswer]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Assessment(CanonicalModel):
    id: str = Field(min_length=1)
    type: Optional[str] = None
    title: Optional[str] = None
    max_score: Optional[float] = Field(default=None, alias="maxScore")
    items: Optional[List[AssessmentItem]] = None
    results: Optional[List[AssessmentResult]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TranscriptRecord(CanonicalModel):
    learner_id: str = Field(alias="learnerId")
    module: Optional[str] = None
    progress: Optional[float] = None
    grade: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ChatMessage(CanonicalModel):
    id: str
    sender: Optional[str] = Field(default=None, alias="from")
    text: Optional[str] = None
    ts: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ChatChannel(CanonicalModel):
    channel: str
    messages: List[ChatMessage] = Field(default_factory=list)


class Diagnostics(CanonicalModel):
    missing_email_count: Optional[int] = Field(default=None, ge=0, alias="missingEmailCount")
    notes: Optional[List[str]] = None


class NormalizedPayload(CanonicalModel):
    """Root artifact produced by every adapter."""

    source: SourceMeta
    institution: Optional[Institution] = None
    course: Course
    instructors: Optional[List[CoursePerson]] = None
    instructor: Optional[CoursePerson] = None
    learners: Optional[List[CoursePerson]] = None
    assessments: Optional[List[Assessment]] = None
    assignments: Optional[List[Assignment]] = None
    transcript: Optional[List[TranscriptRecord]] = None
    chat: Optional[List[ChatChannel]] = None
    diagnostics: Optional[Diagnostics] = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible wire form, keyed by alias."""
        return self.model_dump(mode="json", by_alias=True)
