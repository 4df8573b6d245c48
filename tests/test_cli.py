"""Unit tests for taskpanel.cli — argument parsing and command output."""

import pytest

from taskpanel.cli import main


@pytest.fixture(autouse=True)
def _empty_cwd(tmp_path, monkeypatch):
    """No stray taskpanel.yaml is picked up from the developer's tree."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("TASKPANEL_TOKEN", raising=False)
    return tmp_path


class TestCLIHelp:

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "taskpanel" in capsys.readouterr().out

    def test_unknown_command_exits(self):
        with pytest.raises(SystemExit):
            main(["bogus"])


class TestCheckConfig:

    def test_defaults_ok(self, capsys):
        assert main(["check-config"]) == 0
        assert "[OK] TaskPanel (dev)" in capsys.readouterr().out

    def test_invalid_file(self, tmp_path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text("environment: qa\n", encoding="utf-8")
        assert main(["--config", str(path), "check-config"]) == 1
        out = capsys.readouterr().out
        assert "[ERROR]" in out
        assert "  - " in out


class TestReadCommands:

    def test_comments(self, seeded, http_client, capsys):
        assert main(["comments", "task-1"], http_client=http_client) == 0
        out = capsys.readouterr().out.splitlines()
        assert out[0] == "Comments (2)"
        assert out[1] == "- user-1: First!"
        assert out[2] == "    ↳ user-2: Agreed"

    def test_subtasks(self, seeded, http_client, capsys):
        assert main(["subtasks", "task-1"], http_client=http_client) == 0
        out = capsys.readouterr().out.splitlines()
        assert out[0] == "Subtasks 2/3 (67%)"
        assert "  [ ] Publish" in out

    def test_activity(self, seeded, http_client, capsys):
        assert main(["activity", "task-1"], http_client=http_client) == 0
        out = capsys.readouterr().out
        assert "user-1 added a comment" in out
        assert "user-1 created the task" in out
        assert "More available" not in out

    def test_activity_paging_hint(self, seeded, http_client, capsys):
        assert main(["activity", "task-1", "--limit", "1"], http_client=http_client) == 0
        assert "More available: --offset 1" in capsys.readouterr().out

    def test_activity_empty(self, seeded, http_client, capsys):
        assert main(["activity", "task-2"], http_client=http_client) == 0
        assert "No activity yet" in capsys.readouterr().out

    def test_token_sent(self, seeded, http_client):
        main(["--token", "abc", "subtasks", "task-1"], http_client=http_client)
        assert seeded.requests[-1].headers["Authorization"] == "Bearer abc"

    def test_backend_error(self, seeded, http_client, capsys):
        assert main(["comments", "missing"], http_client=http_client) == 1
        assert "[ERROR] Task not found" in capsys.readouterr().out
