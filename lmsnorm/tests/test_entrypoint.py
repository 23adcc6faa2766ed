"""Command-line entrypoint tests"""

import json

from lmsnorm.normalize_entrypoint import main


class TestNormalizeEntrypoint:
    """Test exit codes and output of the module entrypoint"""

    def test_prints_canonical_payload(self, fixture_path, capsys):
        """Test a valid export exits 0 and prints JSON"""
        code = main(["google-classroom", str(fixture_path("google-classroom-sample.json"))])
        assert code == 0
        wire = json.loads(capsys.readouterr().out)
        assert wire["course"]["id"] == "809246121636"
        assert wire["source"]["lms"] == "google-classroom"

    def test_aux_file(self, fixture_path, tmp_path, capsys):
        """Test the optional auxiliary file is applied"""
        aux = tmp_path / "aux.json"
        aux.write_text(json.dumps({"submissionsMap": {"hw1": {"s1": 1757462400}}}))
        code = main(["edx", str(fixture_path("edx-sample-with-timestamps.json")), str(aux)])
        assert code == 0
        wire = json.loads(capsys.readouterr().out)
        submission = wire["learners"][0]["assignments"][0]["submissions"][0]
        assert submission["submitted_at"] == "2025-09-10T00:00:00.000Z"

    def test_unknown_lms(self, fixture_path):
        """Test an unsupported lms name exits 2"""
        assert main(["blackboard", str(fixture_path("canvas-sample.json"))]) == 2

    def test_bad_arguments(self):
        """Test wrong argument count exits 2"""
        assert main(["canvas"]) == 2

    def test_unreadable_input(self, tmp_path):
        """Test missing or malformed files exit 2"""
        assert main(["canvas", str(tmp_path / "missing.json")]) == 2
        broken = tmp_path / "broken.json"
        broken.write_text("{not json")
        assert main(["canvas", str(broken)]) == 2

    def test_adapter_failure(self, tmp_path):
        """Test a course without id exits 1"""
        raw = tmp_path / "raw.json"
        raw.write_text(json.dumps({"name": "No id"}))
        assert main(["canvas", str(raw)]) == 1
