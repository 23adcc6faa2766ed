"""Google Classroom course export -> canonical payload."""

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
    to_number,
)
from lmsnorm.core.config import settings
from lmsnorm.core.diagnostics import build_diagnostics
from lmsnorm.core.logging import get_logger
from lmsnorm.core.timestamps import normalize_timestamp
from lmsnorm.schemas.normalized import (
    Assessment,
    AssessmentAnswer,
    AssessmentResult,
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

log = get_logger("adapters.google_classroom")

LMS = "google-classroom"
ANSWER_FIELDS = ("multipleChoiceSubmission", "shortAnswerSubmission")


def _profile_person(entry: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a roster entry; Classroom nests identity under ``profile``."""
    profile = as_dict(entry.get("profile"))
    profile_name = profile.get("name")
    name = as_dict(profile_name)
    email = text_or_none(first_of(profile.get("emailAddress"), entry.get("emailAddress"), entry.get("email")))
    return {
        "id": first_of(stable_id(entry.get("userId")), stable_id(profile.get("id")), stable_id(entry.get("id"))),
        "email": email,
        "username": first_of(email.split("@")[0] if email else None, text_or_none(entry.get("username"))),
        "name": text_or_none(
            first_of(
                name.get("fullName"),
                profile_name if isinstance(profile_name, str) else None,
                profile.get("displayName"),
                as_dict(entry.get("name")).get("fullName"),
                entry.get("displayName"),
                entry.get("name"),
            )
        ),
        "photo": text_or_none(profile.get("photoUrl")),
    }


def _answers(sub: Dict[str, Any]) -> List[Any]:
    answers: List[Any] = []
    for field in ANSWER_FIELDS:
        answer = as_dict(sub.get(field)).get("answer")
        if isinstance(answer, list):
            answers.extend(answer)
        elif answer is not None:
            answers.append(answer)
    return answers


def _submissions_by_work(raw: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
    """Submissions listed at the top level, grouped by ``courseWorkId``."""
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for sub in as_list(raw.get("studentSubmissions")):
        sub = as_dict(sub)
        cw_id = stable_id(sub.get("courseWorkId"))
        if cw_id:
            grouped.setdefault(cw_id, []).append(sub)
    return grouped


def _build_submission(sub: Dict[str, Any], total: Optional[float]) -> Dict[str, Any]:
    answers = _answers(sub)
    return {
        "submitted_at": normalize_timestamp(first_of(sub.get("updateTime"), sub.get("creationTime"))),
        "workflow_state": text_or_none(first_of(sub.get("state"), "unsubmitted")),
        "grades": [make_grade(first_of(sub.get("assignedGrade"), sub.get("draftGrade")), total)],
        "metadata": compact(
            {
                "submission_id": stable_id(sub.get("id")),
                "late": sub.get("late"),
                "answers": answers or None,
                "draft_only": True if sub.get("assignedGrade") is None and sub.get("draftGrade") is not None else None,
            }
        ),
    }


def _work_shell(cw: Dict[str, Any], subs: List[Dict[str, Any]]) -> Dict[str, Any]:
    cw_id = first_of(stable_id(cw.get("id")), text_or_none(cw.get("title")))
    questions = max((len(_answers(s)) for s in subs), default=0)
    is_quiz = questions > 0 or cw.get("workType") in ("MULTIPLE_CHOICE_QUESTION", "SHORT_ANSWER_QUESTION")
    topic = stable_id(cw.get("topicId"))
    return {
        "id": cw_id,
        "type": text_or_none(first_of(cw.get("workType"), "ASSIGNMENT")),
        "title": text_or_none(cw.get("title")),
        "max_score": to_number(cw.get("maxPoints")),
        "is_quiz_assignment": is_quiz,
        "quiz_id": first_of(stable_id(cw.get("quizId")), cw_id) if is_quiz else None,
        "total_questions": questions or None,
        "metadata": compact(
            {
                "subsection_name": f"Topic {topic}" if topic else "General",
                "state": cw.get("state"),
                "alternate_link": cw.get("alternateLink"),
                "due_date": as_dict(cw.get("dueDate")) or None,
            }
        ),
    }


def _chat(raw: Dict[str, Any]) -> Optional[List[ChatChannel]]:
    announcements = raw.get("announcements")
    if not isinstance(announcements, list):
        return None
    messages = [
        ChatMessage(
            id=message_id,
            sender=stable_id(a.get("creatorUserId")),
            text=text_or_none(a.get("text")),
            ts=normalize_timestamp(first_of(a.get("creationTime"), a.get("updateTime"))),
        )
        for a in (as_dict(a) for a in announcements)
        if (message_id := stable_id(a.get("id")))
    ]
    return [ChatChannel(channel="announcements", messages=messages)]


def normalize_google_classroom(raw: Dict[str, Any], aux: Any = None) -> NormalizedPayload:
    """Normalize a Google Classroom export (course, teachers, students, courseWork, announcements).

    Each courseWork item becomes both an assessment (all results) and a
    per-learner assignment entry. The course owner is reported as ``instructor``.
    """
    raw = as_dict(raw)
    course_raw = as_dict(raw.get("course"))
    course_id = require_course_id(LMS, course_raw.get("id"), raw.get("id"), raw.get("courseId"))
    index = SubmissionIndex.build(coerce_aux(aux, LMS))

    course = Course(
        id=course_id,
        name=text_or_none(first_of(course_raw.get("name"), raw.get("name"))),
        start_date=normalize_timestamp(first_of(course_raw.get("startTime"), raw.get("startTime"))),
        end_date=normalize_timestamp(first_of(course_raw.get("endTime"), raw.get("endTime"))),
        metadata=compact(
            {
                "section": course_raw.get("section"),
                "enrollmentCode": course_raw.get("enrollmentCode"),
                "courseState": course_raw.get("courseState"),
                "students": len(as_list(raw.get("students"))) or None,
            }
        ),
    )
    organization = as_dict(course_raw.get("organization"))
    institution = (
        Institution(id=stable_id(organization.get("id")), name=text_or_none(organization.get("name")))
        if organization
        else None
    )

    teachers = [_profile_person(t) for t in as_list(first_of(raw.get("owners"), raw.get("teachers"))) if isinstance(t, dict)]
    instructors = [
        CoursePerson(id=t["id"], email=t["email"], username=t["username"], name=t["name"])
        for t in teachers
        if t["id"] or t["email"]
    ]
    owner_id = stable_id(course_raw.get("ownerId"))
    if not instructors and owner_id:
        instructors = [CoursePerson(id=owner_id)]
    owner = next((t for t in teachers if owner_id and t["id"] == owner_id), None)
    instructor = None
    if owner is not None:
        instructor = CoursePerson(id=owner["id"], email=owner["email"], username=owner["username"], name=owner["name"])
    elif owner_id:
        instructor = CoursePerson(id=owner_id)

    enrolled_at = normalize_timestamp(first_of(course_raw.get("creationTime"), course_raw.get("updateTime")))
    learners: List[Dict[str, Any]] = []
    for entry in as_list(first_of(raw.get("students"), raw.get("members"))):
        if not isinstance(entry, dict):
            continue
        person = _profile_person(entry)
        if not (person["id"] or person["email"]):
            continue
        person["time_enrolled"] = enrolled_at
        person["profile"] = compact({"photoUrl": person.pop("photo")})
        learners.append(person)

    top_level = _submissions_by_work(raw)
    works = []
    for cw in as_list(raw.get("courseWork")):
        if not isinstance(cw, dict):
            continue
        # Exports carry submissions under "submissions" or the API name "studentSubmissions"
        subs = [as_dict(s) for s in as_list(cw.get("submissions")) + as_list(cw.get("studentSubmissions"))]
        subs += top_level.get(stable_id(cw.get("id")) or "", [])
        shell = _work_shell(cw, subs)
        if shell["id"] is None:
            continue
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for sub in subs:
            uid = stable_id(sub.get("userId"))
            if uid:
                grouped.setdefault(uid, []).append(sub)
        works.append((shell, subs, grouped))

    known = {l["id"] for l in learners if l["id"]} | {i.id for i in instructors if i.id}
    for _, _, grouped in works:
        for uid in grouped:
            if uid not in known:
                learners.append(
                    {"id": uid, "email": None, "username": None, "name": None, "time_enrolled": None, "profile": {"source": "submission"}}
                )
                known.add(uid)

    assessments = [
        Assessment(
            id=shell["id"],
            type=shell["type"],
            title=shell["title"],
            max_score=shell["max_score"],
            results=[
                AssessmentResult(
                    learner_id=uid,
                    score=to_number(first_of(sub.get("assignedGrade"), sub.get("draftGrade"))),
                    max_score=shell["max_score"],
                    submitted_at=normalize_timestamp(first_of(sub.get("updateTime"), sub.get("creationTime"))),
                    answers=[AssessmentAnswer(q_id=str(pos), value=a) for pos, a in enumerate(_answers(sub), start=1)] or None,
                )
                for sub in subs
                if (uid := stable_id(sub.get("userId")))
            ],
        )
        for shell, subs, _ in works
    ]

    learners_out: List[CoursePerson] = []
    for learner in learners:
        uid = learner["id"]
        learner_keys = [uid, learner["username"], learner["email"]]
        assignments: List[Assignment] = []
        for shell, _, grouped in works:
            built = [_build_submission(sub, shell["max_score"]) for sub in grouped.get(uid, [])] if uid else []
            if settings.ADAPTER_DEBUG:
                log.debug(f"Learner {uid} courseWork {shell['id']}: {len(built)} submission(s)")
            if not built:
                built = [{"workflow_state": "unsubmitted", "grades": [Grade(score=None, totalscore=shell["max_score"])]}]
            for sub in built:
                index.merge(sub, shell["id"], learner_keys)
            assignments.append(Assignment(**shell, submissions=[Submission(**sub) for sub in built]))

        learners_out.append(
            CoursePerson(
                id=uid,
                email=learner["email"],
                username=learner["username"],
                name=learner["name"],
                time_enrolled=learner["time_enrolled"],
                profile=learner["profile"],
                assignments=assignments,
            )
        )

    index.report(LMS)
    payload = NormalizedPayload(
        source=source_meta(LMS, first_of(course_raw.get("id"), raw.get("id"))),
        institution=institution,
        course=course,
        instructor=instructor,
        instructors=instructors or None,
        learners=learners_out or None,
        assessments=assessments or None,
        chat=_chat(raw),
        diagnostics=build_diagnostics(learners_out),
    )
    log.info(
        f"Normalized google-classroom course={course_id} instructors={len(instructors)} "
        f"learners={len(learners_out)} courseWork={len(works)}"
    )
    return payload
