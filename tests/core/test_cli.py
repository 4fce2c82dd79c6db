"""CLI 测试 -- python -m pairsync.core"""

import pytest
from pairsync.core.__main__ import main


class TestIdentityCommands:
    def test_conversation_id(self, capsys):
        main(["conversation-id", "p2", "p1"])
        assert capsys.readouterr().out.strip() == "p1:p2"

    def test_other_participant(self, capsys):
        main(["other-participant", "p1:p2", "p2"])
        assert capsys.readouterr().out.strip() == "p1"

    def test_invalid_input_exit_code(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["conversation-id", "p1", "p1"])
        assert exc_info.value.code == 2

    def test_usage(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([])
        assert exc_info.value.code == 1
        assert "conversation-id" in capsys.readouterr().out

    def test_unknown_command(self):
        with pytest.raises(SystemExit):
            main(["frobnicate"])


class TestThemeCommands:
    def test_set_then_show(self, capsys, monkeypatch, tmp_path):
        monkeypatch.setenv("PAIRSYNC_DB_PATH", str(tmp_path / "sqlite" / "cli.db"))

        main(["theme-set", "p1", "forest", "dark"])
        capsys.readouterr()
        main(["theme-show", "p1"])

        out = capsys.readouterr().out
        assert "dark" in out
        assert "forest" in out

    def test_unknown_preset(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PAIRSYNC_DB_PATH", str(tmp_path / "cli.db"))
        with pytest.raises(SystemExit) as exc_info:
            main(["theme-set", "p1", "neon"])
        assert exc_info.value.code == 2
