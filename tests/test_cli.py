import io
import json

import pytest

from mtlang import EXIT_ABORT, EXIT_OK, EXIT_USAGE, run_cli


COUNTDOWN = (
    "Nval Three.\nStep One.\nZero Zero.\n"
    "looptp.\n    T Nval.\n    su Nval Step Nval.\n    great Nval Zero looptp.\n"
    "done lift off.\nT done.\n"
)


@pytest.fixture
def source_file(tmp_path):
    def write(text, name="program.mt"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return str(path)

    return write


class TestRunCli:
    def test_missing_argument(self, capsys):
        assert run_cli(["--no-color"]) == EXIT_USAGE
        assert "Didn't provide the source file to run." in capsys.readouterr().out

    def test_unreadable_file(self, tmp_path, capsys):
        assert run_cli([str(tmp_path / "missing.mt"), "--no-color"]) == EXIT_USAGE
        assert "Failed to read" in capsys.readouterr().out

    def test_runs_file(self, source_file, capsys):
        assert run_cli([source_file(COUNTDOWN), "--no-color"]) == EXIT_OK
        assert capsys.readouterr().out.splitlines() == ["3", "2", "1", "lift off", "Program is done."]

    def test_literal_source(self, capsys):
        assert run_cli(["-source", "Name hi.T Name.", "--no-color"]) == EXIT_OK
        assert capsys.readouterr().out.splitlines() == ["hi", "Program is done."]

    def test_missing_trailing_dot_warns(self, source_file, capsys):
        assert run_cli([source_file("Name hi.\nT Name"), "--no-color"]) == EXIT_OK
        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == "Warning: You forgot the dot in the last line of your code."
        assert lines[1:] == ["hi", "Program is done."]

    def test_duplicate_label_warning(self, source_file, capsys):
        assert run_cli([source_file("target.\ntarget."), "--no-color"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "Warning on token 1: You are defining the label `target` more than once!" in out

    def test_parse_errors(self, source_file, capsys):
        assert run_cli([source_file("toolongword.\nT newl.\n.\n"), "--no-color"]) == EXIT_ABORT
        out = capsys.readouterr().out
        assert 'Error: `Provided Operation is invalid.` on token 0: "toolongword"' in out
        assert "Error: `No OpCode provided.` on token 2" in out
        assert "Code can't run as a result of the above errors." in out
        assert "Program is done." not in out

    def test_runtime_error(self, source_file, capsys):
        path = source_file("Aaaa Seven.\nZero Zero.\ndiv Aaaa Zero Dest.\nT Aaaa.\n")
        assert run_cli([path, "--no-color", "--traceback-json"]) == EXIT_ABORT
        captured = capsys.readouterr()
        assert "Error: `ZeroDivisionError` on token 2" in captured.out
        assert "The program terminated because of the above error." in captured.out
        assert "Program is done." not in captured.out
        assert json.loads(captured.err)["error"]["kind"] == "ZeroDivisionError"

    def test_reads_stdin(self, source_file, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO("Ada\n41\n"))
        path = source_file("i name reader.\npref hello.\nT pref spce reader.\na Age years.\nIncr One.\nAd years Incr years.\nT years.\n")
        assert run_cli([path, "--no-color"]) == EXIT_OK
        assert capsys.readouterr().out.splitlines() == ["hello Ada", "42", "Program is done."]

    def test_input_mismatch_exits_cleanly(self, source_file, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO("lots\n"))
        assert run_cli([source_file("a Age years.\nT years.\n"), "--no-color"]) == EXIT_OK
        out = capsys.readouterr().out
        assert "which your input is *not*!" in out
        assert "Program is done." in out

    def test_trace(self, source_file, capsys):
        assert run_cli([source_file("T dott.\n"), "--no-color", "--trace"]) == EXIT_OK
        err = capsys.readouterr().err
        assert "[trace]     0 Print  T dott" in err
        assert "Exit" in err

    def test_colors(self, source_file, monkeypatch, capsys):
        monkeypatch.delenv("NO_COLOR", raising=False)
        run_cli([source_file("T dott.\n")])
        assert "\x1b[38;2;" in capsys.readouterr().out

    def test_no_color_env(self, source_file, monkeypatch, capsys):
        monkeypatch.setenv("NO_COLOR", "1")
        run_cli([source_file("T dott.\n")])
        assert "\x1b[" not in capsys.readouterr().out
