"""Canvas course export -> canonical payload."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from lmsnorm.adapters.common import (
    SubmissionIndex,
    as_dict,
    as_list,
    coerce_aux,
    compact,
    first_of,
    make_grade,
    require_course_id,
    source_meta,
    stable_id,
    text_or_none,
    to_int,
    to_number,
)
from lmsnorm.core.config import settings
from lmsnorm.core.diagnostics import build_diagnostics
from lmsnorm.core.logging import get_logger
from lmsnorm.core.timestamps import normalize_timestamp
from lmsnorm.schemas.normalized import (
    Assignment,
    ChatChannel,
    ChatMessage,
    Course,
    CoursePerson,
    Grade,
    Institution,
    NormalizedPayload,
    Submission,
)

log = get_logger("adapters.canvas")

LMS = "canvas"
TEACHER_ROLES = {"teacher", "TeacherEnrollment"}
MISSING_EMAIL_NOTE = "Some learners had no email and were identified by username or synthetic id"


def _is_teacher(enrollment: Dict[str, Any]) -> bool:
    return enrollment.get("type") in TEACHER_ROLES or enrollment.get("role") in TEACHER_ROLES


def _email(*candidates: Any) -> Optional[str]:
    # login_id doubles as email only when it looks like one
    for candidate in candidates:
        if isinstance(candidate, str) and "@" in candidate:
            return candidate
    return None


def _user_id(entry: Dict[str, Any]) -> Optional[str]:
    return first_of(stable_id(entry.get("user_id")), stable_id(as_dict(entry.get("user")).get("id")))


def _instructors(raw: Dict[str, Any], enrollments: List[Dict[str, Any]]) -> List[CoursePerson]:
    candidates: List[Dict[str, Any]] = []
    for e in enrollments:
        if not _is_teacher(e):
            continue
        user = as_dict(e.get("user"))
        candidates.append(
            {
                "id": first_of(stable_id(e.get("user_id")), stable_id(user.get("id"))),
                "username": first_of(user.get("login_id"), e.get("login_id"), user.get("email")),
                "name": first_of(user.get("name"), e.get("name")),
                "email": first_of(user.get("email"), e.get("email"), _email(user.get("login_id"))),
            }
        )
    for t in as_list(first_of(raw.get("teachers"), raw.get("instructors"))):
        if not isinstance(t, dict):
            continue
        user = as_dict(t.get("user"))
        candidates.append(
            {
                "id": first_of(stable_id(t.get("id")), stable_id(t.get("user_id"))),
                "username": first_of(user.get("login_id"), t.get("login_id"), t.get("sis_login_id"), user.get("email"), t.get("email")),
                "name": first_of(user.get("name"), t.get("name")),
                "email": first_of(user.get("email"), t.get("email"), _email(t.get("login_id"))),
            }
        )

    # Same teacher can appear in both lists; later non-empty values win
    merged: Dict[str, Dict[str, Any]] = {}
    for cand in candidates:
        key = first_of(cand["id"], cand["email"], cand["username"])
        if key is None:
            continue
        existing = merged.get(key)
        if existing is None:
            merged[key] = cand
        else:
            merged[key] = {field: first_of(cand[field], existing[field]) for field in cand}

    return [
        CoursePerson(
            id=p["id"],
            email=text_or_none(p["email"]),
            username=text_or_none(p["username"]),
            name=text_or_none(p["name"]),
        )
        for p in merged.values()
    ]


def _learners(raw: Dict[str, Any], enrollments: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    learners: List[Dict[str, Any]] = []
    for s in as_list(first_of(raw.get("students"), raw.get("enrollments"))):
        if not isinstance(s, dict) or _is_teacher(s):
            continue
        user = as_dict(s.get("user")) or s
        grades = as_dict(s.get("grades"))
        learners.append(
            {
                "id": first_of(stable_id(user.get("id")), stable_id(s.get("user_id")), stable_id(s.get("id"))),
                "email": first_of(_email(user.get("email")), _email(user.get("login_id"), s.get("login_id"))),
                "username": first_of(user.get("login_id"), user.get("sis_login_id"), s.get("login_id")),
                "name": first_of(user.get("name"), s.get("name")),
                "time_enrolled": first_of(
                    normalize_timestamp(s.get("created_at")),
                    normalize_timestamp(s.get("enrollment_date")),
                    normalize_timestamp(user.get("created_at")),
                ),
                "profile": compact(
                    {
                        "enrollment_state": s.get("enrollment_state"),
                        "current_score": to_number(grades.get("current_score")),
                        "final_score": to_number(grades.get("final_score")),
                        "current_grade": grades.get("current_grade"),
                    }
                ),
            }
        )

    # Enrollment-level grades for learners that came from an explicit students list
    by_user = {_user_id(e): as_dict(e.get("grades")) for e in enrollments if _user_id(e)}
    for learner in learners:
        grades = by_user.get(learner["id"])
        if grades and not learner["profile"]:
            learner["profile"] = compact(
                {
                    "current_score": to_number(grades.get("current_score")),
                    "final_score": to_number(grades.get("final_score")),
                    "current_grade": grades.get("current_grade"),
                }
            )
    return learners


def _build_submission(
    sub: Dict[str, Any],
    assignment: Dict[str, Any],
    total: Optional[float],
    quiz_grade: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    if quiz_grade is not None:
        grade = make_grade(
            quiz_grade.get("score"),
            to_number(first_of(quiz_grade.get("points_possible"), assignment.get("points_possible"))),
            to_number(quiz_grade.get("percentage")),
            origin="quiz_grades",
        )
    else:
        grade = make_grade(
            first_of(sub.get("score"), sub.get("entered_score"), sub.get("entered_grade"), sub.get("grade")),
            total,
            letter_grade=sub.get("grade") if to_number(sub.get("grade")) is None else None,
        )
    return {
        "submitted_at": normalize_timestamp(first_of(sub.get("submitted_at"), sub.get("posted_at"), sub.get("graded_at"))),
        "workflow_state": text_or_none(first_of(sub.get("workflow_state"), sub.get("workflow"), "submitted")),
        "grades": [grade],
        "metadata": compact({"attempt": sub.get("attempt"), "late": sub.get("late"), "missing": sub.get("missing")}),
    }


def _assignment_shell(a: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    assignment_id = first_of(stable_id(a.get("id")), text_or_none(a.get("name")))
    if assignment_id is None:
        return None
    quiz = as_dict(a.get("quiz")) or as_dict(a.get("quizInfo"))
    is_quiz = bool(a.get("is_quiz_assignment")) or a.get("quiz_id") is not None
    question_count = to_int(quiz.get("question_count")) if is_quiz else None
    submission_types = a.get("submission_types")
    group_id = stable_id(a.get("assignment_group_id"))
    return {
        "id": assignment_id,
        "type": ",".join(str(t) for t in submission_types) if isinstance(submission_types, list) and submission_types else "assignment",
        "title": text_or_none(a.get("name")),
        "max_score": to_number(a.get("points_possible")),
        "is_quiz_assignment": is_quiz,
        "quiz_id": stable_id(a.get("quiz_id")) if is_quiz else None,
        "question_count": question_count,
        "total_questions": question_count,
        "metadata": compact(
            {
                "subsection_name": f"Assignment Group {group_id}" if group_id else None,
                "assignment_group_id": group_id,
                "due_at": normalize_timestamp(a.get("due_at")),
            }
        ),
    }


def _chat(raw: Dict[str, Any]) -> Optional[List[ChatChannel]]:
    if "discussion_topics" not in raw:
        return None
    messages: List[ChatMessage] = []
    for topic in as_list(raw.get("discussion_topics")):
        topic = as_dict(topic)
        for m in as_list(topic.get("messages")):
            if not isinstance(m, dict):
                continue
            message_id = stable_id(m.get("id"))
            if message_id is None:
                continue
            messages.append(
                ChatMessage(
                    id=message_id,
                    sender=first_of(stable_id(as_dict(m.get("user")).get("id")), stable_id(m.get("user_id"))),
                    text=text_or_none(m.get("message")),
                    ts=normalize_timestamp(m.get("created_at")),
                    metadata=compact({"topic_id": stable_id(topic.get("id")), "topic_title": topic.get("title")}),
                )
            )
    return [ChatChannel(channel="discussion", messages=messages)]


def normalize_canvas(raw: Dict[str, Any], aux: Any = None) -> NormalizedPayload:
    """Normalize a Canvas course export (course + enrollments + assignments with submissions)."""
    raw = as_dict(raw)
    course_id = require_course_id(LMS, raw.get("id"))
    index = SubmissionIndex.build(coerce_aux(aux, LMS))

    account = as_dict(raw.get("account"))
    institution = (
        Institution(id=stable_id(account.get("id")), name=text_or_none(account.get("name")))
        if account
        else None
    )
    course = Course(
        id=course_id,
        name=text_or_none(first_of(raw.get("name"), raw.get("course_name"))),
        start_date=normalize_timestamp(raw.get("start_at")),
        end_date=normalize_timestamp(raw.get("end_at")),
        metadata=compact(
            {
                "workflow_state": text_or_none(raw.get("workflow_state")),
                "course_code": raw.get("course_code"),
                "account_id": stable_id(raw.get("account_id")),
                "course_format": raw.get("course_format"),
            }
        ),
    )

    enrollments = [e for e in as_list(raw.get("enrollments")) if isinstance(e, dict)]
    instructors = _instructors(raw, enrollments)
    learners = _learners(raw, enrollments)

    raw_assignments = [a for a in as_list(raw.get("assignments")) if isinstance(a, dict)]
    # Submissions grouped by user once per assignment
    subs_by_user: List[Dict[str, List[Dict[str, Any]]]] = []
    for a in raw_assignments:
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for sub in as_list(a.get("submissions")):
            uid = _user_id(as_dict(sub))
            if uid:
                grouped.setdefault(uid, []).append(sub)
        subs_by_user.append(grouped)

    # Submitters missing from the roster are still represented
    known = {l["id"] for l in learners if l["id"]} | {i.id for i in instructors if i.id}
    for grouped in subs_by_user:
        for uid, subs in grouped.items():
            if uid in known:
                continue
            user = as_dict(subs[0].get("user"))
            learners.append(
                {
                    "id": uid,
                    "email": _email(user.get("email"), user.get("login_id")),
                    "username": user.get("login_id"),
                    "name": user.get("name"),
                    "time_enrolled": None,
                    "profile": {"source": "submission"},
                }
            )
            known.add(uid)

    shells = [_assignment_shell(a) for a in raw_assignments]
    learners_out: List[CoursePerson] = []
    for learner in learners:
        uid = learner["id"]
        learner_keys = [uid, learner["username"], learner["email"]]
        assignments: List[Assignment] = []
        for a, shell, grouped in zip(raw_assignments, shells, subs_by_user):
            if shell is None:
                continue
            total = shell["max_score"]
            quiz_grades = as_list(as_dict(a.get("quizGrades")).get("grades"))
            quiz_grade = next((g for g in quiz_grades if stable_id(as_dict(g).get("user_id")) == uid), None) if uid else None
            subs = grouped.get(uid, []) if uid else []
            if settings.ADAPTER_DEBUG:
                log.debug(f"Learner {uid} assignment {shell['id']}: {len(subs)} submission(s)")

            built = [_build_submission(sub, a, total, quiz_grade) for sub in subs]
            if not built:
                built = [{"workflow_state": "unsubmitted", "grades": [Grade(score=None, totalscore=total)]}]
            for sub in built:
                index.merge(sub, shell["id"], learner_keys)

            assignments.append(Assignment(**shell, submissions=[Submission(**sub) for sub in built]))

        learners_out.append(
            CoursePerson(
                id=uid,
                email=text_or_none(learner["email"]),
                username=text_or_none(learner["username"]),
                name=text_or_none(learner["name"]),
                time_enrolled=learner["time_enrolled"],
                profile=learner["profile"],
                assignments=assignments,
            )
        )

    index.report(LMS)
    payload = NormalizedPayload(
        source=source_meta(LMS, raw.get("id")),
        institution=institution,
        course=course,
        instructors=instructors,
        learners=learners_out or None,
        chat=_chat(raw),
        diagnostics=build_diagnostics(learners_out, MISSING_EMAIL_NOTE),
    )
    log.info(
        f"Normalized canvas course={course_id} instructors={len(instructors)} "
        f"learners={len(learners_out)} assignments={sum(1 for s in shells if s)}"
    )
    return payload
