"""Google Classroom adapter tests"""

import pytest

from lmsnorm.adapters import normalize_google_classroom
from lmsnorm.core.errors import MissingRequiredFieldError
from lmsnorm.services.validator import validate


def _learner(payload, learner_id):
    return next(l for l in payload.learners if l.id == learner_id)


def _assignment(learner, assignment_id):
    return next(a for a in learner.assignments if a.id == assignment_id)


class TestGoogleClassroomAdapter:
    """Test Google Classroom exports normalize into a valid canonical payload"""

    @pytest.fixture
    def raw(self, load_fixture):
        return load_fixture("google-classroom-sample.json")

    def test_output_validates(self, raw):
        """Test normalized output passes the canonical schema"""
        result = validate(normalize_google_classroom(raw))
        assert result.valid, result.errors

    def test_course(self, raw):
        """Test course identity and metadata"""
        payload = normalize_google_classroom(raw)
        assert payload.source.lms == "google-classroom"
        assert payload.course.id == "809246121636"
        assert payload.course.metadata["section"] == "Period 2"
        assert payload.course.metadata["students"] == 2

    def test_owner_is_instructor(self, raw):
        """Test the course owner is reported as the instructor"""
        payload = normalize_google_classroom(raw)
        assert payload.instructor.id == "111"
        assert payload.instructor.name == "Ms. Rivera"
        assert [i.email for i in payload.instructors] == ["rivera@school.org"]

    def test_learners(self, raw):
        """Test roster profiles are flattened"""
        payload = normalize_google_classroom(raw)
        jamie = _learner(payload, "201")
        assert jamie.name == "Jamie Lee"
        assert jamie.email == "jamie@school.org"
        assert jamie.time_enrolled == "2025-08-20T15:00:00.123Z"

    def test_percentage_from_max_points(self, raw):
        """Test percentage is score over maxPoints on the 0-100 scale"""
        work = _assignment(_learner(normalize_google_classroom(raw), "201"), "809426520504")
        grade = work.submissions[0].grades[0]
        assert grade.score == 10
        assert grade.percentage == 50
        assert work.metadata["subsection_name"] == "Topic t1"

    def test_ungraded_submission_null_score(self, raw):
        """Test a submission without a grade keeps a null score"""
        work = _assignment(_learner(normalize_google_classroom(raw), "202"), "809426520504")
        assert work.submissions[0].workflow_state == "CREATED"
        assert work.submissions[0].grades[0].score is None

    def test_question_answers_mark_quiz(self, raw):
        """Test answered questions flag a quiz and are kept in metadata"""
        work = _assignment(_learner(normalize_google_classroom(raw), "201"), "809426520600")
        assert work.is_quiz_assignment is True
        assert work.quiz_id == "809426520600"
        assert work.total_questions == 1
        submission = work.submissions[0]
        assert submission.grades[0].score == 4
        assert submission.metadata["answers"] == ["Prophase"]

    def test_unsubmitted_placeholder(self, raw):
        """Test courseWork a learner never touched"""
        work = _assignment(_learner(normalize_google_classroom(raw), "202"), "809426520600")
        assert work.submissions[0].workflow_state == "unsubmitted"

    def test_assessments(self, raw):
        """Test courseWork is also reported as assessments"""
        payload = normalize_google_classroom(raw)
        assert [a.id for a in payload.assessments] == ["809426520504", "809426520600"]
        results = payload.assessments[0].results
        assert [r.learner_id for r in results] == ["201", "202"]
        assert results[1].score is None

    def test_announcements(self, raw):
        """Test announcements land in their own channel"""
        channel = normalize_google_classroom(raw).chat[0]
        assert channel.channel == "announcements"
        assert channel.messages[0].text == "Lab on Friday"

    def test_diagnostics(self, raw):
        """Test learners without email are counted"""
        assert normalize_google_classroom(raw).diagnostics.missing_email_count == 1

    def test_missing_course_id_raises(self, raw):
        """Test no course id is a hard failure"""
        raw["course"].pop("id")
        with pytest.raises(MissingRequiredFieldError):
            normalize_google_classroom(raw)


class TestGoogleClassroomShapes:
    """Test connector-shaped exports and roster variants"""

    @pytest.fixture
    def raw(self):
        return {
            "course": {"id": "9001", "ownerId": "o1"},
            "students": [{"userId": "201", "profile": {"id": "201", "emailAddress": "kim@school.org"}}],
            "courseWork": [
                {"id": "w1", "title": "Lab", "maxPoints": 10, "submissions": [{"userId": "201", "assignedGrade": 7, "state": "RETURNED"}]}
            ],
        }

    def test_submissions_key_read(self, raw):
        """Test courseWork submissions under the connector key are normalized"""
        payload = normalize_google_classroom(raw)
        submission = _assignment(_learner(payload, "201"), "w1").submissions[0]
        assert submission.workflow_state == "RETURNED"
        assert submission.grades[0].score == 7
        assert submission.grades[0].percentage == 70
        assert [r.score for r in payload.assessments[0].results] == [7]

    def test_owners_preferred_over_teachers(self, raw):
        """Test owners win when both rosters are present"""
        raw["owners"] = [{"id": "o1", "name": {"fullName": "Owner One"}, "emailAddress": "o1@school.org"}]
        raw["teachers"] = [{"id": "t1", "name": {"fullName": "Teacher One"}}]
        payload = normalize_google_classroom(raw)
        assert [(i.id, i.name) for i in payload.instructors] == [("o1", "Owner One")]
        assert payload.instructor.name == "Owner One"

    def test_owner_id_fallback_instructor(self, raw):
        """Test the course owner id stands in when no roster of teachers exists"""
        payload = normalize_google_classroom(raw)
        assert [i.id for i in payload.instructors] == ["o1"]

    def test_processed_roster_names(self, raw):
        """Test names given as a top-level name object or a plain profile name"""
        raw["teachers"] = [{"id": "t1", "name": {"fullName": "Teacher One"}}]
        raw["students"] = [{"userId": "201", "profile": {"id": "201", "name": "Kim Ito"}}]
        payload = normalize_google_classroom(raw)
        assert payload.instructors[0].name == "Teacher One"
        assert _learner(payload, "201").name == "Kim Ito"

    def test_non_string_fields_do_not_raise(self, raw):
        """Test numeric state and workType are stringified"""
        raw["courseWork"][0]["workType"] = 3
        raw["courseWork"][0]["submissions"][0]["state"] = 4
        payload = normalize_google_classroom(raw)
        work = _assignment(_learner(payload, "201"), "w1")
        assert work.type == "3"
        assert work.submissions[0].workflow_state == "4"
        assert validate(payload).valid

    def test_aux_submission_timestamp_merged(self, raw):
        """Test auxiliary timestamps reach submissions and placeholders; unmatched entries are ignored"""
        raw["courseWork"].append({"id": "w2", "maxPoints": 5})
        aux = {
            "submissionsMap": {
                "w1": {"201": "2025-09-10T14:23:00Z"},
                "w2": {"kim@school.org": 1757462400},
                "w9": {"nobody": "2025-09-11T08:00:00Z"},
            }
        }
        learner = _learner(normalize_google_classroom(raw, aux), "201")
        assert _assignment(learner, "w1").submissions[0].submitted_at == "2025-09-10T14:23:00.000Z"
        placeholder = _assignment(learner, "w2").submissions[0]
        assert placeholder.workflow_state == "unsubmitted"
        assert placeholder.submitted_at == "2025-09-10T00:00:00.000Z"
        assert [l.id for l in normalize_google_classroom(raw, aux).learners] == ["201"]
