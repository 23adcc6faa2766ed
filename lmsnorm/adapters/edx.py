"""edX course export -> canonical payload.

The gradebook comes in two shapes: per-user rows carrying a
``section_breakdown`` (the instructor gradebook API) or per-assessment items
carrying ``scores``. Both end up as ``learners[].assignments``; only the
per-assessment shape also yields ``assessments``.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

from lmsnorm.adapters.common import (
    SubmissionIndex,
    as_dict,
    as_list,
    coerce_aux,
    compact,
    first_of,
    make_grade,
    percentage_of,
    require_course_id,
    scale_fraction,
    source_meta,
    stable_id,
    text_or_none,
    to_number,
)
from lmsnorm.core.config import settings
from lmsnorm.core.diagnostics import build_diagnostics
from lmsnorm.core.logging import get_logger
from lmsnorm.core.timestamps import normalize_timestamp
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
    Institution,
    NormalizedPayload,
    Submission,
    TranscriptRecord,
)

log = get_logger("adapters.edx")

LMS = "edx"
MISSING_EMAIL_NOTE = "Some learners had no email and were identified by username or synthetic id"
STAFF_ROLE = re.compile(r"instructor|teacher|staff|admin")


def _full_name(user: Dict[str, Any]) -> Optional[str]:
    name = first_of(user.get("name"), user.get("display_name"), user.get("full_name"))
    if name is None and user.get("first_name"):
        name = f"{user['first_name']} {user.get('last_name') or ''}".strip()
    return text_or_none(name)


def _looks_like_instructor(entry: Dict[str, Any]) -> bool:
    nested = as_dict(entry.get("user"))
    roles = entry.get("roles")
    if isinstance(roles, list):
        roles = ",".join(str(r) for r in roles)
    role = first_of(entry.get("role"), entry.get("user_role"), roles, nested.get("role")) or ""
    is_staff = any(
        source.get(flag) for source in (entry, nested) for flag in ("is_staff", "is_active_staff")
    )
    return is_staff or bool(STAFF_ROLE.search(str(role).lower()))


def _identity(person: Dict[str, Any]) -> List[str]:
    return [str(v) for v in (person.get("id"), person.get("username"), person.get("email")) if v]


class _Roster:
    """Learners keyed by canonical id (or username/email), with username lookups."""

    def __init__(self) -> None:
        self.by_key: Dict[str, Dict[str, Any]] = {}
        self.username_to_key: Dict[str, str] = {}

    def add(self, key: str, **fields: Any) -> Dict[str, Any]:
        entry = {"id": None, "email": None, "username": None, "name": None, "time_enrolled": None, "assignments": []}
        entry.update({k: v for k, v in fields.items() if v is not None})
        self.by_key[key] = entry
        if entry["username"]:
            self.username_to_key[str(entry["username"])] = key
        return entry

    def resolve(self, username: Any, user_id: Any, email: Any) -> Optional[str]:
        if username and str(username) in self.username_to_key:
            return self.username_to_key[str(username)]
        if user_id is not None and user_id != "":
            return stable_id(user_id)
        if email:
            for key, entry in self.by_key.items():
                if entry["email"] == email:
                    return key
        return first_of(text_or_none(username), text_or_none(email))

    def ensure(self, key: str, row: Dict[str, Any], username: Any) -> Dict[str, Any]:
        entry = self.by_key.get(key)
        if entry is None:
            entry = self.add(key, id=key)
        entry["email"] = first_of(entry["email"], text_or_none(row.get("email")))
        entry["username"] = first_of(entry["username"], text_or_none(username))
        entry["name"] = first_of(entry["name"], text_or_none(first_of(row.get("name"), row.get("full_name"))))
        entry["time_enrolled"] = first_of(
            entry["time_enrolled"],
            normalize_timestamp(row.get("enrolled_at")),
            normalize_timestamp(row.get("enrollment_date")),
            normalize_timestamp(row.get("created")),
        )
        return entry


def _split_roster(raw: Dict[str, Any]):
    instructors: List[Dict[str, Any]] = []
    for s in as_list(first_of(raw.get("staff"), raw.get("instructors"))):
        if not isinstance(s, dict):
            continue
        instructors.append(
            {
                "id": first_of(stable_id(s.get("id")), s.get("username"), s.get("email")),
                "email": text_or_none(s.get("email")),
                "username": text_or_none(s.get("username")),
                "name": _full_name(s),
            }
        )

    learners_raw: List[Dict[str, Any]] = []
    for e in as_list(first_of(raw.get("students"), raw.get("learners"))):
        if not isinstance(e, dict):
            continue
        if not _looks_like_instructor(e):
            learners_raw.append(e)
            continue
        cand = as_dict(e.get("user")) or e
        person = {
            "id": first_of(stable_id(cand.get("id")), cand.get("username"), cand.get("email")),
            "email": text_or_none(cand.get("email")),
            "username": text_or_none(cand.get("username")),
            "name": _full_name(cand),
        }
        key = first_of(person["id"], person["username"], person["email"])
        if key and not any(first_of(i["id"], i["username"], i["email"]) == key for i in instructors):
            instructors.append(person)
    return instructors, learners_raw


def _seed_roster(learners_raw: List[Dict[str, Any]]) -> _Roster:
    roster = _Roster()
    for u in learners_raw:
        nested = as_dict(u.get("user"))
        email = first_of(u.get("email"), nested.get("email"))
        username = first_of(u.get("username"), nested.get("username"), email.split("@")[0] if isinstance(email, str) else None)
        canonical_id = first_of(stable_id(u.get("id")), stable_id(nested.get("id")))
        if not (canonical_id or username or email):
            continue
        roster.add(
            str(first_of(canonical_id, username, email)),
            id=canonical_id,
            email=text_or_none(email),
            username=text_or_none(username),
            name=text_or_none(first_of(u.get("name"), nested.get("name"), nested.get("full_name"), u.get("display_name"))),
            time_enrolled=first_of(
                normalize_timestamp(u.get("created")),
                normalize_timestamp(u.get("enrolled_at")),
                normalize_timestamp(u.get("enrollment_date")),
                normalize_timestamp(nested.get("created")),
                normalize_timestamp(nested.get("enrolled_at")),
            ),
        )
    return roster


def _section_id(sec: Dict[str, Any]) -> Optional[str]:
    return first_of(stable_id(sec.get("module_id")), stable_id(sec.get("id")), text_or_none(sec.get("label")), text_or_none(sec.get("subsection_name")))


def _per_user_gradebook(gradebook: List[Dict[str, Any]], roster: _Roster, index: SubmissionIndex) -> None:
    # Max score per assignment across every learner row
    max_scores: Dict[str, float] = {}
    for row in gradebook:
        for sec in as_list(row.get("section_breakdown")):
            sec = as_dict(sec)
            asm_id = _section_id(sec)
            possible = to_number(first_of(sec.get("score_possible"), sec.get("possible"), sec.get("max_score"))) or 0
            if asm_id and possible > 0:
                max_scores[asm_id] = max(max_scores.get(asm_id, 0), possible)

    for row in gradebook:
        username = first_of(row.get("username"), row.get("user"))
        key = roster.resolve(username, row.get("user_id"), row.get("email"))
        if not key:
            continue
        learner = roster.ensure(key, row, username)
        learner_keys = [username, row.get("user_id"), row.get("user"), row.get("email"), learner["id"]]

        for sec in as_list(row.get("section_breakdown")):
            sec = as_dict(sec)
            asm_id = first_of(
                stable_id(sec.get("module_id")),
                text_or_none(sec.get("label")),
                text_or_none(sec.get("subsection_name")),
                f"{username}:{sec.get('label')}",
            )
            earned = to_number(sec.get("score_earned"))
            possible = to_number(sec.get("score_possible"))
            # Earned/possible when both exist, otherwise the 0-1 ``percent`` fraction
            percentage = percentage_of(earned, possible)
            if percentage is None:
                percentage = scale_fraction(sec.get("percent"))

            submission = {
                "submitted_at": first_of(
                    normalize_timestamp(sec.get("submitted_at")),
                    normalize_timestamp(sec.get("submission_timestamp")),
                    normalize_timestamp(sec.get("submitted_at_iso")),
                ),
                "workflow_state": "submitted" if sec.get("attempted") else "not_attempted",
                "grades": [make_grade(sec.get("score_earned"), possible, percentage)],
            }
            index.merge(submission, asm_id, learner_keys)

            category = text_or_none(sec.get("category"))
            learner["assignments"].append(
                Assignment(
                    id=asm_id,
                    type=category or "assessment",
                    title=text_or_none(first_of(sec.get("label"), sec.get("subsection_name"))) or "assignment",
                    max_score=first_of(max_scores.get(asm_id), possible),
                    is_quiz_assignment=bool(category and category.lower() == "quiz"),
                    submissions=[Submission(**submission)],
                    metadata=compact({"subsection_name": first_of(sec.get("subsection_name"), sec.get("label"))}),
                )
            )
            if settings.ADAPTER_DEBUG:
                log.debug(f"Learner {key} section {asm_id}: earned={earned} possible={possible} pct={percentage}")


def _per_assessment_gradebook(
    gradebook: List[Dict[str, Any]], roster: _Roster, index: SubmissionIndex
) -> List[Assessment]:
    assessments: List[Assessment] = []
    for item in gradebook:
        asm_id = first_of(stable_id(item.get("id")), text_or_none(item.get("name")))
        if asm_id is None:
            continue
        max_score = to_number(first_of(item.get("max_score"), item.get("out_of")))
        title = text_or_none(first_of(item.get("name"), item.get("display_name")))
        questions = [as_dict(q) for q in as_list(item.get("questions"))]
        results: List[AssessmentResult] = []

        for r in as_list(item.get("scores")):
            r = as_dict(r)
            key = roster.resolve(r.get("username"), r.get("user_id"), r.get("email"))
            if not key:
                continue
            learner = roster.ensure(key, r, r.get("username"))

            answers = [
                compact(
                    {
                        "id": stable_id(first_of(a.get("id"), a.get("qid"))) or str(pos),
                        "type": text_or_none(first_of(a.get("type"), "unknown")),
                        "answer": first_of(a.get("answer"), a.get("text"), a.get("value")),
                    }
                )
                for pos, a in enumerate((as_dict(a) for a in as_list(r.get("answers"))), start=1)
            ]
            submission = {
                "submitted_at": normalize_timestamp(r.get("submitted_at")),
                "workflow_state": text_or_none(first_of(r.get("state"), r.get("status"), "graded")),
                "grades": [make_grade(r.get("score"), max_score)],
                "metadata": {"questions": answers} if answers else {},
            }
            index.merge(submission, asm_id, [r.get("username"), r.get("user_id"), r.get("email"), learner["id"]])

            question_total = len(answers) or len(questions)
            learner["assignments"].append(
                Assignment(
                    id=asm_id,
                    type="assessment",
                    title=title,
                    max_score=max_score,
                    is_quiz_assignment=bool(answers),
                    total_questions=question_total or None,
                    submissions=[Submission(**submission)],
                )
            )

            learner_id = first_of(learner["id"], key)
            if learner_id:
                results.append(
                    AssessmentResult(
                        learner_id=learner_id,
                        score=to_number(r.get("score")),
                        max_score=max_score,
                        submitted_at=submission["submitted_at"],
                        answers=[AssessmentAnswer(q_id=a["id"], value=a.get("answer")) for a in answers] or None,
                    )
                )

        assessments.append(
            Assessment(
                id=asm_id,
                type=text_or_none(first_of(item.get("type"), "assessment")),
                title=title,
                max_score=max_score,
                items=[
                    AssessmentItem(q_id=qid, question=text_or_none(q.get("text")), type=text_or_none(q.get("type")))
                    for q in questions
                    if (qid := first_of(stable_id(q.get("id")), text_or_none(q.get("name"))))
                ],
                results=results,
            )
        )
    return assessments


def _dedupe(learners: List[Dict[str, Any]], instructors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    seen = set()
    deduped: List[Dict[str, Any]] = []
    for learner in learners:
        keys = {f"id:{learner['id']}", f"username:{learner['username']}", f"email:{learner['email']}"}
        keys = {k for k in keys if not k.endswith(":None")}
        if keys & seen:
            continue
        seen |= keys
        deduped.append(learner)

    # Staff that also show up in the gradebook stay instructors only
    for ins in instructors:
        ins_keys = set(_identity(ins))
        for pos, learner in enumerate(deduped):
            if ins_keys & set(_identity(learner)):
                del deduped[pos]
                break
    return deduped


def normalize_edx(raw: Dict[str, Any], aux: Any = None) -> NormalizedPayload:
    """Normalize an edX course export (course, staff, enrollments, gradebook, progress, discussions).

    ``submissionsMap`` timestamps can ride inline on ``raw`` or arrive in
    ``aux``; the auxiliary value wins when both name the same pair.
    """
    raw = as_dict(raw)
    course_raw = as_dict(raw.get("course"))
    course_id = require_course_id(LMS, course_raw.get("id"), raw.get("course_id"), raw.get("id"), raw.get("courseId"))
    index = SubmissionIndex.build(coerce_aux(aux, LMS), inline=raw.get("submissionsMap"))

    inst = as_dict(raw.get("institution"))
    institution = (
        Institution(id=text_or_none(first_of(inst.get("id"), inst.get("org"))), name=text_or_none(inst.get("name")))
        if inst
        else None
    )
    course = Course(
        id=course_id,
        name=text_or_none(first_of(course_raw.get("name"), course_raw.get("display_name"))),
        start_date=normalize_timestamp(course_raw.get("start")),
        end_date=normalize_timestamp(course_raw.get("end")),
        metadata={
            **as_dict(course_raw.get("metadata")),
            **compact(
                {
                    "number": course_raw.get("number"),
                    "org": course_raw.get("org"),
                    "short_description": course_raw.get("short_description"),
                }
            ),
        },
    )

    instructors, learners_raw = _split_roster(raw)
    roster = _seed_roster(learners_raw)

    gradebook = [as_dict(g) for g in as_list(raw.get("gradebook"))]
    assessments: List[Assessment] = []
    if gradebook:
        first = gradebook[0]
        if first.get("username") and isinstance(first.get("section_breakdown"), list):
            _per_user_gradebook(gradebook, roster, index)
        else:
            assessments = _per_assessment_gradebook(gradebook, roster, index)

    learners = _dedupe(list(roster.by_key.values()), instructors)
    learners_out = [
        CoursePerson(
            id=stable_id(l["id"]),
            email=text_or_none(l["email"]),
            username=text_or_none(l["username"]),
            name=text_or_none(l["name"]),
            time_enrolled=l["time_enrolled"],
            assignments=l["assignments"],
        )
        for l in learners
    ]
    instructors_out = [
        CoursePerson(id=stable_id(i["id"]), email=i["email"], username=i["username"], name=i["name"])
        for i in instructors
    ]

    transcript = [
        TranscriptRecord(
            learner_id=learner_id,
            module=text_or_none(p.get("module")),
            progress=to_number(p.get("progress")),
            grade=text_or_none(p.get("grade")),
        )
        for p in (as_dict(p) for p in as_list(raw.get("progress")))
        if (learner_id := first_of(stable_id(p.get("user_id")), text_or_none(p.get("username"))))
    ]

    chat = None
    if raw.get("discussions"):
        chat = [
            ChatChannel(
                channel="forum",
                messages=[
                    ChatMessage(
                        id=message_id,
                        sender=text_or_none(first_of(m.get("author"), m.get("username"))),
                        text=text_or_none(m.get("text")),
                        ts=normalize_timestamp(m.get("created_at")),
                    )
                    for m in (as_dict(m) for m in as_list(as_dict(raw.get("discussions")).get("messages")))
                    if (message_id := stable_id(first_of(m.get("id"), m.get("pk"))))
                ],
            )
        ]

    index.report(LMS)
    payload = NormalizedPayload(
        source=source_meta(LMS, first_of(course_raw.get("id"), raw.get("id"), raw.get("course_id"))),
        institution=institution,
        course=course,
        instructors=instructors_out or None,
        learners=learners_out or None,
        assessments=assessments or None,
        transcript=transcript or None,
        chat=chat,
        diagnostics=build_diagnostics(learners_out, MISSING_EMAIL_NOTE),
    )
    log.info(
        f"Normalized edx course={course_id} instructors={len(instructors_out)} "
        f"learners={len(learners_out)} assessments={len(assessments)}"
    )
    return payload
