"""Moodle course export -> canonical payload."""

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

log = get_logger("adapters.moodle")

LMS = "moodle"
GRADED_MODULES = ("quiz", "assign")


def _institution(raw: Dict[str, Any]) -> Optional[Institution]:
    category = raw.get("category")
    if category is None or category == "":
        return None
    if isinstance(category, dict):
        return Institution(
            id=stable_id(category.get("id")),
            name=text_or_none(first_of(category.get("name"), raw.get("category_name"))),
        )
    return Institution(id=stable_id(category), name=text_or_none(raw.get("category_name")))


def _submission_user(sub: Dict[str, Any]) -> Optional[str]:
    return first_of(stable_id(sub.get("userid")), stable_id(as_dict(sub.get("user")).get("id")))


def _build_submission(sub: Dict[str, Any], total: Optional[float]) -> Dict[str, Any]:
    raw_score = first_of(sub.get("grade"), sub.get("score"))
    return {
        "submitted_at": normalize_timestamp(first_of(sub.get("timemodified"), sub.get("timecreated"))),
        "workflow_state": text_or_none(
            first_of(
                sub.get("status"),
                sub.get("submissionstate"),
                "unsubmitted" if raw_score is None else "submitted",
            )
        ),
        "grades": [make_grade(raw_score, total)],
        "metadata": compact({"attempt": sub.get("attempt"), "gradingstatus": sub.get("gradingstatus")}),
    }


def _assignment_shell(act: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    assignment_id = first_of(stable_id(act.get("id")), text_or_none(act.get("name")))
    if assignment_id is None:
        return None
    is_quiz = act.get("modname") == "quiz"
    question_count = to_int(act.get("question_count")) if is_quiz else None
    return {
        "id": assignment_id,
        "type": act.get("modname"),
        "title": text_or_none(act.get("name")),
        "max_score": to_number(first_of(act.get("maxgrade"), act.get("grade"))),
        "is_quiz_assignment": is_quiz,
        "quiz_id": first_of(stable_id(act.get("modid")), stable_id(act.get("id"))) if is_quiz else None,
        "question_count": question_count,
        "total_questions": question_count,
        "metadata": compact(
            {
                "subsection_name": text_or_none(first_of(act.get("section"), act.get("category"), "General")),
                "cmid": stable_id(act.get("cmid")),
                "duedate": normalize_timestamp(act.get("duedate")),
            }
        ),
    }


def _chat(raw: Dict[str, Any]) -> Optional[List[ChatChannel]]:
    forums = raw.get("forum")
    if not isinstance(forums, list):
        return None
    messages: List[ChatMessage] = []
    for forum in forums:
        for discussion in as_list(as_dict(forum).get("discussions")):
            for post in as_list(as_dict(discussion).get("posts")):
                post = as_dict(post)
                post_id = stable_id(post.get("id"))
                if post_id is None:
                    continue
                messages.append(
                    ChatMessage(
                        id=post_id,
                        sender=stable_id(post.get("userid")),
                        text=text_or_none(post.get("message")),
                        ts=normalize_timestamp(post.get("created")),
                        metadata=compact({"discussion": stable_id(as_dict(discussion).get("id")), "subject": post.get("subject")}),
                    )
                )
    return [ChatChannel(channel="forum", messages=messages)]


def normalize_moodle(raw: Dict[str, Any], aux: Any = None) -> NormalizedPayload:
    """Normalize a Moodle course export; timestamps arrive as epoch seconds."""
    raw = as_dict(raw)
    course_id = require_course_id(LMS, raw.get("id"), raw.get("courseid"))
    index = SubmissionIndex.build(coerce_aux(aux, LMS))

    start_date = normalize_timestamp(raw.get("startdate"))
    course = Course(
        id=course_id,
        name=text_or_none(first_of(raw.get("fullname"), raw.get("name"))),
        start_date=start_date,
        end_date=normalize_timestamp(raw.get("enddate")),
        metadata=compact({"summary": raw.get("summary"), "shortname": raw.get("shortname")}),
    )

    instructors = [
        CoursePerson(
            id=stable_id(t.get("id")),
            name=text_or_none(first_of(t.get("fullname"), t.get("name"))),
            email=text_or_none(t.get("email")),
            username=text_or_none(first_of(t.get("username"), t.get("email"))),
        )
        for t in as_list(first_of(raw.get("teachers"), raw.get("instructors")))
        if isinstance(t, dict)
    ]

    learners: List[Dict[str, Any]] = [
        {
            "id": stable_id(u.get("id")),
            "email": u.get("email"),
            "username": first_of(u.get("username"), u.get("email")),
            "name": first_of(u.get("fullname"), u.get("name")),
            # Moodle rosters rarely carry an enrolment time; course start is the fallback
            "time_enrolled": first_of(normalize_timestamp(u.get("timeenrolled")), start_date),
            "profile": compact({"lastaccess": normalize_timestamp(u.get("lastaccess")), "roles": u.get("roles")}),
        }
        for u in as_list(first_of(raw.get("students"), raw.get("participants")))
        if isinstance(u, dict)
    ]

    activities = [
        act
        for act in as_list(raw.get("activities"))
        if isinstance(act, dict) and act.get("modname") in GRADED_MODULES
    ]
    subs_by_user: List[Dict[str, List[Dict[str, Any]]]] = []
    for act in activities:
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for sub in as_list(act.get("submissions")):
            uid = _submission_user(as_dict(sub))
            if uid:
                grouped.setdefault(uid, []).append(sub)
        subs_by_user.append(grouped)

    known = {l["id"] for l in learners if l["id"]} | {i.id for i in instructors if i.id}
    for grouped in subs_by_user:
        for uid in grouped:
            if uid not in known:
                learners.append(
                    {"id": uid, "email": None, "username": None, "name": None, "time_enrolled": None, "profile": {"source": "submission"}}
                )
                known.add(uid)

    shells = [_assignment_shell(act) for act in activities]
    learners_out: List[CoursePerson] = []
    for learner in learners:
        uid = learner["id"]
        learner_keys = [uid, learner["username"], learner["email"]]
        assignments: List[Assignment] = []
        for shell, grouped in zip(shells, subs_by_user):
            if shell is None:
                continue
            subs = grouped.get(uid, []) if uid else []
            if settings.ADAPTER_DEBUG:
                log.debug(f"Learner {uid} activity {shell['id']}: {len(subs)} submission(s)")
            built = [_build_submission(sub, shell["max_score"]) for sub in subs]
            if not built:
                built = [{"workflow_state": "unsubmitted", "grades": [Grade(score=None, totalscore=shell["max_score"])]}]
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
        source=source_meta(LMS, first_of(raw.get("id"), raw.get("courseid"))),
        institution=_institution(raw),
        course=course,
        instructors=instructors or None,
        learners=learners_out or None,
        chat=_chat(raw),
        diagnostics=build_diagnostics(learners_out),
    )
    log.info(
        f"Normalized moodle course={course_id} instructors={len(instructors)} "
        f"learners={len(learners_out)} activities={sum(1 for s in shells if s)}"
    )
    return payload
