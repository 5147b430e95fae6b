"""CLI exit codes and boundary request building."""

import io
import json

import pytest
from pydantic import ValidationError

import sft_replace
from sft_replace import (
    EXIT_CHANGED,
    EXIT_ERROR,
    EXIT_NO_MATCHES,
    ConfigError,
    ReplaceRequest,
    _build_request,
    _split_csv,
    main,
)


def _run(argv):
    with pytest.raises(SystemExit) as exc:
        main(argv)
    return exc.value.code


class TestMain:
    def test_replace_exit_zero_and_json(self, tmp_path, write_file, capsys):
        path = write_file("a.txt", "target\n")

        code = _run(["replace", "target", "REPLACED", "-d", str(tmp_path)])

        assert code == EXIT_CHANGED
        payload = json.loads(capsys.readouterr().out)
        assert payload["directories"][0]["files_modified"] == 1
        assert path.read_text() == "REPLACED\n"

    def test_no_matches_exit_two(self, tmp_path, write_file):
        write_file("a.txt", "nothing\n")

        assert _run(["replace", "target", "REPLACED", "-d", str(tmp_path)]) == EXIT_NO_MATCHES

    def test_missing_directory_exit_one(self, tmp_path, capsys):
        code = _run(["replace", "target", "REPLACED", "-d", str(tmp_path / "missing")])

        assert code == EXIT_ERROR
        assert capsys.readouterr().err.startswith("Error:")

    def test_empty_search_exit_one(self, tmp_path, capsys):
        assert _run(["replace", "", "x", "-d", str(tmp_path)]) == EXIT_ERROR
        assert "search is required" in capsys.readouterr().err

    def test_dry_command_does_not_write(self, tmp_path, write_file, capsys):
        path = write_file("a.txt", "target\n")

        assert _run(["dry", "target", "REPLACED", "-d", str(tmp_path)]) == EXIT_CHANGED
        payload = json.loads(capsys.readouterr().out)
        assert payload["dry_run"] is True
        assert payload["summary"].startswith("Would modify 1 file")
        assert path.read_text() == "target\n"

    def test_dry_run_flag(self, tmp_path, write_file):
        path = write_file("a.txt", "target\n")

        assert _run(["replace", "target", "X", "-n", "-d", str(tmp_path)]) == EXIT_CHANGED
        assert path.read_text() == "target\n"

    def test_empty_replace_deletes(self, tmp_path, write_file):
        path = write_file("a.txt", "keep DROP keep\n")

        assert _run(["replace", " DROP", "", "-d", str(tmp_path)]) == EXIT_CHANGED
        assert path.read_text() == "keep keep\n"

    def test_comma_separated_options(self, tmp_path, write_file, capsys):
        a = write_file("one/a.txt", "target\ntarget skip\n")
        b = write_file("two/b.txt", "target\n")

        code = _run([
            "replace", "target", "X",
            "-d", f"{tmp_path / 'one'}, {tmp_path / 'two'}",
            "-e", "skip,other",
        ])

        assert code == EXIT_CHANGED
        assert a.read_text() == "X\ntarget skip\n"
        assert b.read_text() == "X\n"
        assert "across 2 directories" in json.loads(capsys.readouterr().out)["summary"]

    def test_file_mode_with_flags(self, write_file, capsys):
        path = write_file("a.py", "Log logger LOG\n")

        code = _run(["replace", "log", "out", "-f", str(path), "-i", "-w", "-x", ".py"])

        assert code == EXIT_CHANGED
        assert path.read_text() == "out logger out\n"
        payload = json.loads(capsys.readouterr().out)
        assert payload["directories"][0]["dir"] == sft_replace.FILES_GROUP

    def test_recursive_flag(self, tmp_path, write_file):
        nested = write_file("sub/a.txt", "target\n")

        assert _run(["replace", "target", "X", "-d", str(tmp_path), "-r"]) == EXIT_CHANGED
        assert nested.read_text() == "X\n"

    def test_identical_search_and_replace_warns(self, tmp_path, write_file, capsys):
        write_file("a.txt", "same\n")

        assert _run(["replace", "same", "same", "-d", str(tmp_path)]) == EXIT_NO_MATCHES
        assert "identical" in capsys.readouterr().err

    def test_search_from_stdin(self, tmp_path, write_file, monkeypatch):
        path = write_file("a.txt", "aaa\nbbb\nccc\n")
        monkeypatch.setattr("sys.stdin", io.StringIO("aaa\nbbb"))

        assert _run(["replace", "-", "xxx", "-f", str(path)]) == EXIT_CHANGED
        assert path.read_text() == "xxx\nccc\n"

    def test_both_from_stdin_rejected(self, tmp_path):
        assert _run(["replace", "-", "-", "-d", str(tmp_path)]) == EXIT_ERROR

    @pytest.mark.parametrize("command", sft_replace.EXPOSED)
    def test_exposed_names_are_subcommands(self, command, tmp_path, write_file):
        write_file("a.txt", "nothing\n")

        assert _run([command, "target", "X", "-d", str(tmp_path)]) == EXIT_NO_MATCHES

    def test_version(self, capsys):
        assert _run(["-V"]) == 0
        assert sft_replace.CONFIG["version"] in capsys.readouterr().out


class TestBuildRequest:
    def test_defaults(self):
        request = _build_request("a", "b")

        assert request.directories == (".",)
        assert request.files == ()
        assert not (request.case_insensitive or request.whole_word or request.dry_run or request.recursive)

    def test_single_strings_and_lists(self):
        request = _build_request("a", "b", files="one.txt", directories=["x", "y"])

        assert request.files == ("one.txt",)
        assert request.directories == ("x", "y")

    def test_empty_values_fall_back(self):
        request = _build_request("a", "b", files="", directories=[], exclude=["", "keep", 3])

        assert request.files == ()
        assert request.directories == (".",)
        assert request.exclude == ("keep",)

    def test_empty_replace_allowed(self):
        assert _build_request("a", "").replace == ""

    @pytest.mark.parametrize("search", [None, "", 5])
    def test_search_required(self, search):
        with pytest.raises(ConfigError):
            _build_request(search, "b")

    def test_replace_required(self):
        with pytest.raises(ConfigError):
            _build_request("a", None)

    def test_request_is_immutable(self):
        request = _build_request("a", "b")

        with pytest.raises(ValidationError):
            request.search = "c"

    def test_model_rejects_empty_search(self):
        with pytest.raises(ValidationError):
            ReplaceRequest(search="", replace="x")


def test_split_csv():
    assert _split_csv(["a, b", "c", " ,d,"]) == ["a", "b", "c", "d"]
