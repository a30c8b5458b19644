"""
tests/test_cli.py
CLI smoke tests: each subcommand against temp files, exit codes, output.
"""

import json

from mirror.cli import main
from mirror.config import CONFIG_FILENAME
from mirror.progress.tracker import create_empty_progress, progress_to_dict, record_exchanges


class TestClassify:

    def test_crisis_exit_code(self, tmp_path, capsys):
        assert main(["--project-root", str(tmp_path), "classify", "--text", "I want to die"]) == 2
        assert "category=self" in capsys.readouterr().out

    def test_clear(self, tmp_path, capsys):
        assert main(["--project-root", str(tmp_path), "classify", "--text", "the study was fine"]) == 0
        assert "No crisis language" in capsys.readouterr().out


class TestCoverage:

    def test_json_conversation_file(self, tmp_path, capsys):
        convo = tmp_path / "convo.json"
        convo.write_text(json.dumps([{"role": "user", "content": "my patients in therapy"}]), encoding="utf-8")
        assert main(["--project-root", str(tmp_path), "coverage", "--file", str(convo)]) == 0
        out = capsys.readouterr().out
        assert "clinical_connection" in out
        assert "Not yet explored" in out


class TestResolve:

    def test_resolve_with_roster(self, tmp_path, capsys):
        roster = tmp_path / "roster.json"
        roster.write_text(json.dumps([
            {"id": "s1", "name": "Jane Doe", "email": "jane.doe@csueastbay.edu"},
        ]), encoding="utf-8")
        paper = tmp_path / "paper.txt"
        paper.write_text("jane.doe@csueastbay.edu\nWeek 4 response", encoding="utf-8")

        code = main(["--project-root", str(tmp_path), "resolve",
                     "--roster", str(roster), "--file", str(paper)])
        assert code == 0
        out = capsys.readouterr().out
        assert "Jane Doe" in out
        assert "Auto-confirm eligible" in out


class TestReport:

    def test_report_written(self, tmp_path):
        p = record_exchanges(create_empty_progress("a"), 2, 10)
        progress = tmp_path / "class.json"
        progress.write_text(json.dumps([progress_to_dict(p)]), encoding="utf-8")
        output = tmp_path / "summary.json"

        code = main([
            "--project-root", str(tmp_path), "report",
            "--progress", str(progress),
            "--incident-db", str(tmp_path / "incidents.db"),
            "--output", str(output),
        ])
        assert code == 0
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["report"]["student_count"] == 1
        assert "content_hash_sha256" in data


class TestInitConfig:

    def test_writes_defaults(self, tmp_path):
        assert main(["--project-root", str(tmp_path), "init-config"]) == 0
        assert (tmp_path / CONFIG_FILENAME).exists()
