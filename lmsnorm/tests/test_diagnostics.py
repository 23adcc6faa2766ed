"""Diagnostics tests"""

from lmsnorm.core.config import settings
from lmsnorm.core.diagnostics import build_diagnostics
from lmsnorm.schemas.normalized import CoursePerson


class TestBuildDiagnostics:
    """Test missing-email accounting"""

    def test_counts_missing_and_empty_emails(self):
        """Test absent and empty emails both count"""
        learners = [{"email": "a@x.org"}, {"email": ""}, {"email": None}, {}]
        diagnostics = build_diagnostics(learners, "custom note")
        assert diagnostics.missing_email_count == 3
        assert diagnostics.notes == ["custom note"]

    def test_no_note_when_all_present(self):
        """Test the note is omitted when nothing is missing"""
        diagnostics = build_diagnostics([{"email": "a@x.org"}])
        assert diagnostics.missing_email_count == 0
        assert diagnostics.notes == []

    def test_default_note_from_settings(self):
        """Test the configured note is used when none is given"""
        diagnostics = build_diagnostics([CoursePerson(id="1")])
        assert diagnostics.notes == [settings.MISSING_EMAIL_NOTE]

    def test_empty_roster(self):
        """Test an empty learner list"""
        assert build_diagnostics([]).missing_email_count == 0
