"""edX adapter tests"""

import pytest

from lmsnorm.adapters import normalize_edx
from lmsnorm.core.errors import MissingRequiredFieldError
from lmsnorm.services.validator import validate


def _learner(payload, username):
    return next(l for l in payload.learners if l.username == username)


def _assignment(learner, assignment_id):
    return next(a for a in learner.assignments if a.id == assignment_id)


class TestEdxAdapter:
    """Test edX exports normalize into a valid canonical payload"""

    @pytest.fixture
    def raw(self, load_fixture):
        return load_fixture("edx-sample.json")

    def test_output_validates(self, raw):
        """Test normalized output passes the canonical schema"""
        result = validate(normalize_edx(raw))
        assert result.valid, result.errors

    def test_course(self, raw):
        """Test course identity and metadata"""
        payload = normalize_edx(raw)
        assert payload.course.id == "course-v1:MIT+CS50+2025_T1"
        assert payload.course.metadata == {"number": "CS50", "org": "MITx"}
        assert payload.institution.id == "MITx"

    def test_staff_promoted_to_instructors(self, raw):
        """Test staff-looking enrollments are instructors, not learners"""
        payload = normalize_edx(raw)
        assert sorted(i.username for i in payload.instructors) == ["prof_m", "ta_sam"]
        assert [l.username for l in payload.learners] == ["s1", "s2"]

    def test_learner_without_identity_skipped(self, raw):
        """Test enrollments with no id, username or email are dropped"""
        payload = normalize_edx(raw)
        assert all(l.name != "ghost" for l in payload.learners)

    def test_score_and_percentage(self, raw):
        """Test earned/possible scores"""
        hw1 = _assignment(_learner(normalize_edx(raw), "s1"), "hw1")
        grade = hw1.submissions[0].grades[0]
        assert grade.score == 8
        assert grade.percentage == 80.0
        assert hw1.max_score == 10
        assert hw1.submissions[0].workflow_state == "submitted"
        assert hw1.metadata["subsection_name"] == "Week 1 Homework"

    def test_fractional_percent_scaled(self, raw):
        """Test a 0-1 percent fraction is reported on the 0-100 scale"""
        quiz = _assignment(_learner(normalize_edx(raw), "s1"), "quiz1")
        grade = quiz.submissions[0].grades[0]
        assert grade.percentage == 50
        assert grade.score is None
        assert quiz.is_quiz_assignment is True

    def test_unattempted_keeps_null_score(self, raw):
        """Test an unattempted section is not scored zero"""
        hw1 = _assignment(_learner(normalize_edx(raw), "s2"), "hw1")
        assert hw1.submissions[0].workflow_state == "not_attempted"
        assert hw1.submissions[0].grades[0].score is None

    def test_transcript_and_forum(self, raw):
        """Test progress and discussions are carried over"""
        payload = normalize_edx(raw)
        assert payload.transcript[0].learner_id == "1"
        assert payload.transcript[0].progress == 0.75
        assert payload.chat[0].channel == "forum"
        assert payload.chat[0].messages[0].sender == "s1"

    def test_diagnostics(self, raw):
        """Test learners without email are counted"""
        assert normalize_edx(raw).diagnostics.missing_email_count == 1

    def test_missing_course_id_raises(self, raw):
        """Test no course id is a hard failure"""
        raw["course"].pop("id")
        with pytest.raises(MissingRequiredFieldError):
            normalize_edx(raw)


class TestEdxSubmissionTimestamps:
    """Test submissionsMap timestamps are merged into submissions"""

    @pytest.fixture
    def raw(self, load_fixture):
        return load_fixture("edx-sample-with-timestamps.json")

    def test_inline_submissions_map(self, raw):
        """Test an inline map sets submitted_at"""
        payload = normalize_edx(raw)
        hw1 = _assignment(_learner(payload, "s1"), "hw1")
        assert payload.course.id == "course-v1:MIT+CS50+2025_T1"
        assert hw1.submissions[0].submitted_at == "2025-09-10T14:23:00.000Z"

    def test_aux_overrides_inline(self, raw):
        """Test auxiliary fragments win over the inline map"""
        payload = normalize_edx(raw, {"submissionsMap": {"hw1": {"s1": 1757462400}}})
        hw1 = _assignment(_learner(payload, "s1"), "hw1")
        assert hw1.submissions[0].submitted_at == "2025-09-10T00:00:00.000Z"

    def test_aux_keyed_by_numeric_user_id(self, raw):
        """Test numeric learner keys match the learner id"""
        raw.pop("submissionsMap")
        payload = normalize_edx(raw, {"submissionsMap": {"hw1": {1: "2025-09-11T08:00:00Z"}}})
        hw1 = _assignment(_learner(payload, "s1"), "hw1")
        assert hw1.submissions[0].submitted_at == "2025-09-11T08:00:00.000Z"

    def test_unmatched_entries_ignored(self, raw):
        """Test entries for unknown learners do not change output"""
        raw.pop("submissionsMap")
        payload = normalize_edx(raw, {"submissionsMap": {"hw9": {"nobody": "2025-09-11T08:00:00Z"}}})
        hw1 = _assignment(_learner(payload, "s1"), "hw1")
        assert hw1.submissions[0].submitted_at is None


class TestEdxAssessmentGradebook:
    """Test the per-assessment gradebook shape"""

    @pytest.fixture
    def raw(self):
        return {
            "course": {"id": "course-v1:Org+X1+2025"},
            "gradebook": [
                {
                    "id": "exam1",
                    "name": "Midterm",
                    "max_score": 50,
                    "questions": [{"id": "q1", "text": "2+2?", "type": "numeric"}],
                    "scores": [
                        {
                            "username": "u1",
                            "user_id": 11,
                            "score": 40,
                            "submitted_at": 1757514180,
                            "answers": [{"id": "q1", "answer": "4"}],
                        }
                    ],
                }
            ],
        }

    def test_assessments_emitted(self, raw):
        """Test items and results are reported per assessment"""
        payload = normalize_edx(raw)
        assert validate(payload).valid
        exam = payload.assessments[0]
        assert exam.id == "exam1"
        assert exam.max_score == 50
        assert [i.q_id for i in exam.items] == ["q1"]
        result = exam.results[0]
        assert result.learner_id == "11"
        assert result.score == 40
        assert result.submitted_at == "2025-09-10T14:23:00.000Z"
        assert result.answers[0].value == "4"

    def test_learner_created_from_scores(self, raw):
        """Test graded learners absent from the roster are added"""
        learner = normalize_edx(raw).learners[0]
        assert learner.id == "11"
        assert learner.username == "u1"
        exam = learner.assignments[0]
        assert exam.is_quiz_assignment is True
        assert exam.total_questions == 1
        assert exam.submissions[0].grades[0].percentage == 80.0


class TestEdxEdgeCases:
    """Test sparse or oddly typed edX exports"""

    def test_no_instructors_omitted(self):
        """Test an export without staff has no instructors list"""
        payload = normalize_edx({"course": {"id": "course-v1:Org+X1+2025"}, "students": [{"id": 1, "username": "u1"}]})
        assert payload.instructors is None
        assert "instructors" not in payload.to_dict()

    def test_non_string_state_and_type(self):
        """Test numeric state and assessment type are stringified"""
        raw = {
            "course": {"id": "c1"},
            "gradebook": [{"id": "exam1", "type": 2, "scores": [{"user_id": 11, "score": 3, "state": 1}]}],
        }
        payload = normalize_edx(raw)
        assert payload.assessments[0].type == "2"
        assert payload.learners[0].assignments[0].submissions[0].workflow_state == "1"
        assert validate(payload).valid
